# challenge catalogue endpoints on top of the resilient fetcher
from typing import Optional

import structlog

from codearena.core.values import maybe_int
from codearena.transport.envelope import Envelope, Outcome, to_outcome
from codearena.transport.fetcher import ResilientFetcher
from .models import DIFFICULTIES, Challenge, ChallengePage

log = structlog.get_logger(__name__)

# the server caps per_page at this value
MAX_PER_PAGE = 50


def _challenge_from(env: Envelope) -> Optional[Challenge]:
    data = env.data if isinstance(env.data, dict) else {}
    raw = data.get("challenge")
    if not isinstance(raw, dict):
        return None
    return Challenge.model_validate(raw)


def _page_from(env: Envelope) -> Optional[ChallengePage]:
    if not isinstance(env.data, dict) or not isinstance(env.data.get("items"), list):
        return None
    pagination = env.data.get("pagination")
    pagination = pagination if isinstance(pagination, dict) else {}
    items = [Challenge.model_validate(c) for c in env.data["items"] if isinstance(c, dict)]
    return ChallengePage(
        items=items,
        page=max(1, maybe_int(pagination.get("current_page")) or 1),
        per_page=max(0, maybe_int(pagination.get("per_page")) or len(items)),
        total=max(0, maybe_int(pagination.get("total")) or len(items)),
        total_pages=max(1, maybe_int(pagination.get("total_pages")) or 1),
    )


class ChallengeService:
    """Read-only challenge catalogue. Methods resolve to an Outcome and never raise."""

    def __init__(self, fetcher: ResilientFetcher):
        self.fetcher = fetcher

    async def daily(self) -> Outcome:
        r = await self.fetcher.request("/api/challenges/daily")
        out = to_outcome(r, _challenge_from, default_message="Unable to load daily challenge")
        if not out.ok:
            log.warning("challenge.daily_failed", status=out.status, kind=out.kind, message=out.message)
        return out

    async def list_challenges(self, page: int = 1, per_page: int = 12,
                              difficulty: Optional[str] = None, search: Optional[str] = None) -> Outcome:
        params = {"page": max(1, page), "per_page": min(max(1, per_page), MAX_PER_PAGE)}
        if difficulty and difficulty.lower() in DIFFICULTIES:
            params["difficulty"] = difficulty.lower()
        if search and search.strip():
            params["search"] = search.strip()
        r = await self.fetcher.request("/api/challenges/list", params=params)
        out = to_outcome(r, _page_from, default_message="Unable to load challenges")
        if out.ok:
            log.debug("challenge.list", page=out.value.page, total_pages=out.value.total_pages,
                      count=len(out.value.items))
        else:
            log.warning("challenge.list_failed", status=out.status, kind=out.kind, message=out.message)
        return out
