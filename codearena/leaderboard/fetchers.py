import time
from typing import Any, List, Optional

import structlog

from codearena.transport.envelope import Envelope, Outcome, to_outcome
from codearena.transport.fetcher import ResilientFetcher
from .models import LeaderboardEntry, LeaderboardSnapshot

log = structlog.get_logger(__name__)


def _rows(env: Envelope) -> Optional[List[Any]]:
    # accepted shapes: a bare list, or {"data": {"items": [...]}}
    if isinstance(env.data, list):
        return env.data
    if isinstance(env.data, dict) and isinstance(env.data.get("items"), list):
        return env.data["items"]
    return None


class LeaderboardSource:
    def __init__(self, fetcher: ResilientFetcher, board_type: Optional[str] = None,
                 per_page: Optional[int] = None):
        self.fetcher = fetcher
        self.board_type = board_type
        self.per_page = per_page

    def _snapshot(self, env: Envelope) -> Optional[LeaderboardSnapshot]:
        rows = _rows(env)
        if rows is None:
            return None
        entries = [LeaderboardEntry.model_validate(r) for r in rows if isinstance(r, dict)]
        return LeaderboardSnapshot(entries=entries, asof_ts=time.time(), board_type=self.board_type)

    async def fetch(self) -> Outcome:
        r = await self.fetcher.request(
            "/api/leaderboard", params={"type": self.board_type, "per_page": self.per_page},
        )
        out = to_outcome(r, self._snapshot, default_message="Failed to load leaderboard")
        if out.ok:
            log.debug("leaderboard.fetched", count=len(out.value.entries), board_type=self.board_type)
        else:
            log.warning("leaderboard.fetch_failed", status=out.status, kind=out.kind, message=out.message)
        return out

    async def entries(self) -> Optional[List[LeaderboardEntry]]:
        """Polling-friendly refresh: the entries on success, None on any failure."""
        out = await self.fetch()
        return out.value.entries if out.ok else None
