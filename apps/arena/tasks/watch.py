# background loops: poll -> dedup -> print
import asyncio
from typing import List, Optional

import structlog

from codearena.battles.clock import timing_for
from codearena.battles.models import Battle, BattleStatus
from codearena.battles.service import BattleService
from codearena.config.constants import CLOCK_TICK_SEC
from codearena.config.env import Cfg
from codearena.leaderboard.fetchers import LeaderboardSource
from codearena.leaderboard.models import LeaderboardEntry
from codearena.leaderboard.ranker import LeaderboardQuery, aggregate, rank_change
from codearena.polling.controller import PollingSubscription
from codearena.polling.dedup import SnapshotGate
from codearena.session.store import SessionStore
from codearena.transport.fetcher import ResilientFetcher

log = structlog.get_logger(__name__)


def print_leaderboard(entries: List[LeaderboardEntry], query: LeaderboardQuery) -> None:
    rows = aggregate(entries, query)
    print(f"{'#':>4} {'User':<20} {'Points':>9} {'Solved':>7} {'Won':>5} {'Rating':>7} {'Δ':>4}")
    print("-" * 62)
    for r in rows:
        e = r.entry
        delta = rank_change(e)
        print(f"{r.display_rank:>4} {e.username[:20]:<20} {e.total_points:>9.0f} "
              f"{e.stats.challenges_solved:>7} {e.stats.battles_won:>5} {e.stats.avg_rating:>7.1f} "
              f"{'' if delta is None else f'{delta:+d}':>4}")
    if not rows:
        print("(no entries)")


def print_battle(b: Battle) -> None:
    opp = b.opponent.username if b.opponent else (f"invited:{b.invited}" if b.invited else "-")
    print(f"[battle {b.id}] {b.title} | {b.status.value} | {b.creator.username} vs {opp} | "
          f"{b.duration_minutes}m | prize={b.prize_points}" + (f" | winner={b.winner}" if b.winner else ""))


async def _wait(stop: asyncio.Event, timeout: float) -> None:
    try:
        await asyncio.wait_for(stop.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        pass


async def run_leaderboard_watch(cfg: Cfg, session: SessionStore, query: LeaderboardQuery,
                                board_type: Optional[str] = None, stop: Optional[asyncio.Event] = None):
    stop = stop or asyncio.Event()
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        source = LeaderboardSource(fetcher, board_type=board_type)
        gate = SnapshotGate()
        gate.bus.subscribe(lambda entries: print_leaderboard(entries, query))
        log.info("leaderboard watch started", interval=cfg.leaderboard_poll_sec, board_type=board_type)
        async with PollingSubscription(source.entries, cfg.leaderboard_poll_sec, gate=gate, name="leaderboard"):
            await stop.wait()


async def run_battle_watch(cfg: Cfg, session: SessionStore, battle_id: str,
                           stop: Optional[asyncio.Event] = None):
    stop = stop or asyncio.Event()
    async with ResilientFetcher.from_cfg(cfg, session) as fetcher:
        svc = BattleService(fetcher)
        gate = SnapshotGate()
        gate.bus.subscribe(print_battle)

        async def refresh():
            out = await svc.get_battle(battle_id)
            if not out.ok:
                log.warning("battle refresh failed", battle_id=battle_id, message=out.message)
                return None
            return out.value

        log.info("battle watch started", battle_id=battle_id, interval=cfg.battle_poll_sec)
        async with PollingSubscription(refresh, cfg.battle_poll_sec, gate=gate, name=f"battle:{battle_id}"):
            while not stop.is_set():
                battle: Optional[Battle] = gate.current
                if battle is not None:
                    if battle.status == BattleStatus.COMPLETED:
                        break
                    timing = timing_for(battle)
                    if timing is not None:
                        print(f"  {timing.label:>6}  {timing.progress_pct:>3}%", flush=True)
                await _wait(stop, CLOCK_TICK_SEC)
