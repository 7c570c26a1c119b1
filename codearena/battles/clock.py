"""Match countdown for in-progress battles.

The server's ``started_at`` is taken as ground truth; no clock-skew
correction is applied.
"""
import asyncio
import math
import time
from datetime import datetime, timezone
from typing import AsyncIterator, Optional, Union

from pydantic import BaseModel

from codearena.config.constants import CLOCK_TICK_SEC
from .models import Battle, BattleStatus

Instant = Union[datetime, int, float]

ENDED_LABEL = "Ended"


class MatchTiming(BaseModel):
    remaining_sec: int
    progress_pct: int
    label: str

    @property
    def ended(self) -> bool:
        return self.remaining_sec == 0


def _to_ms(value: Instant) -> float:
    """Datetimes become epoch milliseconds; numbers are taken as epoch milliseconds."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp() * 1000.0
    return float(value)


def now_ms() -> float:
    return time.time() * 1000.0


def format_remaining(remaining_sec: int) -> str:
    if remaining_sec <= 0:
        return ENDED_LABEL
    return f"{remaining_sec // 60}:{remaining_sec % 60:02d}"


def compute_match_timing(started_at: Optional[Instant], duration_minutes: Optional[float],
                         now: Optional[Instant] = None) -> Optional[MatchTiming]:
    if started_at is None or not duration_minutes:
        return None
    start = _to_ms(started_at)
    current = now_ms() if now is None else _to_ms(now)
    duration_ms = float(duration_minutes) * 60_000
    end = start + duration_ms

    remaining = max(0, math.ceil((end - current) / 1000))
    elapsed = min(max(current - start, 0.0), duration_ms)
    progress = math.floor(elapsed / duration_ms * 100 + 0.5)
    return MatchTiming(remaining_sec=remaining, progress_pct=progress, label=format_remaining(remaining))


def timing_for(battle: Battle, now: Optional[Instant] = None) -> Optional[MatchTiming]:
    if battle.status != BattleStatus.IN_PROGRESS:
        return None
    return compute_match_timing(battle.started_at, battle.duration_minutes, now)


async def tick_match(battle: Battle, interval: float = CLOCK_TICK_SEC) -> AsyncIterator[MatchTiming]:
    """Yield a fresh timing every ``interval`` seconds until the match has ended."""
    while True:
        timing = timing_for(battle)
        if timing is None:
            return
        yield timing
        if timing.ended:
            return
        await asyncio.sleep(interval)
