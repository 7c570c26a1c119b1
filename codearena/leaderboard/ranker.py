from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

from codearena.config.constants import LEADERBOARD_PAGE_SIZE
from .models import Institution, LeaderboardEntry, RankedEntry

SORT_FIELDS: Dict[str, Callable[[LeaderboardEntry], float]] = {
    "points": lambda e: e.total_points,
    "challengesSolved": lambda e: e.stats.challenges_solved or 0,
    "battlesWon": lambda e: e.stats.battles_won or 0,
    "avgRating": lambda e: e.stats.avg_rating or 0.0,
}
SORT_ALIASES = {"challenges": "challengesSolved", "battles": "battlesWon", "rating": "avgRating"}

INDEPENDENT = "Independent"


class LeaderboardQuery(BaseModel):
    search: str = ""
    institution: str = "all"
    sort_by: str = "points"
    direction: str = "desc"
    page_size: int = Field(LEADERBOARD_PAGE_SIZE, gt=0)

    @field_validator("sort_by")
    @classmethod
    def _known_sort(cls, v: str) -> str:
        v = SORT_ALIASES.get(v, v)
        if v not in SORT_FIELDS:
            raise ValueError(f"unknown sort field: {v}")
        return v

    @field_validator("direction")
    @classmethod
    def _known_direction(cls, v: str) -> str:
        v = v.lower()
        if v not in ("asc", "desc"):
            raise ValueError(f"unknown sort direction: {v}")
        return v


def matches_text(e: LeaderboardEntry, term: str) -> bool:
    inst = e.institution.name if e.institution else ""
    return any(term in (s or "").lower() for s in (e.full_name, e.username, inst))


def filter_by_text(entries: Iterable[LeaderboardEntry], search: str) -> List[LeaderboardEntry]:
    term = (search or "").strip().lower()
    if not term:
        return list(entries)
    return [e for e in entries if matches_text(e, term)]


def matches_institution(e: LeaderboardEntry, key: str) -> bool:
    inst: Optional[Institution] = e.institution
    if key == "dbuu":
        return bool(inst and inst.short_name) and inst.short_name.lower() == "dbuu"
    if key == "iit":
        return "iit" in (inst.name if inst else "").lower()
    if key == "other":
        return inst is None
    label = (inst.short_name or inst.name) if inst else ""
    return (label or "").lower() == key


def filter_by_institution(entries: Iterable[LeaderboardEntry], institution: str) -> List[LeaderboardEntry]:
    key = (institution or "all").lower()
    if key == "all":
        return list(entries)
    return [e for e in entries if matches_institution(e, key)]


def sort_entries(entries: Iterable[LeaderboardEntry], sort_by: str = "points",
                 direction: str = "desc") -> List[LeaderboardEntry]:
    """Stable sort: equal keys keep their input order in both directions."""
    key = SORT_FIELDS[SORT_ALIASES.get(sort_by, sort_by)]
    return sorted(entries, key=key, reverse=(direction == "desc"))


def rerank(entries: Iterable[LeaderboardEntry]) -> List[RankedEntry]:
    return [RankedEntry(display_rank=i + 1, entry=e) for i, e in enumerate(entries)]


def aggregate(entries: Iterable[LeaderboardEntry], query: Optional[LeaderboardQuery] = None) -> List[RankedEntry]:
    q = query or LeaderboardQuery()
    pool = filter_by_text(entries, q.search)
    pool = filter_by_institution(pool, q.institution)
    pool = sort_entries(pool, q.sort_by, q.direction)
    return rerank(pool)[: q.page_size]


# ---- derived views ----
def rank_change(e: LeaderboardEntry) -> Optional[int]:
    if not e.previous_rank or e.rank is None:
        return None
    return e.previous_rank - e.rank


def institution_representation(entries: Iterable[LeaderboardEntry]) -> Dict[str, object]:
    """Per-institution head counts over the whole snapshot, plus the most represented one."""
    counts: Counter = Counter()
    names: Dict[str, str] = {}
    for e in entries:
        inst = e.institution
        key = (inst.short_name or inst.name) if inst else INDEPENDENT
        counts[key] += 1
        names.setdefault(key, inst.name if inst else INDEPENDENT)
    top = None
    for key, n in counts.items():
        if top is None or n > top["count"]:
            top = {"key": key, "name": names[key], "count": n}
    return {"counts": dict(counts), "top": top}


def battle_points(e: LeaderboardEntry) -> float:
    for v in (e.battle_points, e.stats.battle_points, e.stats.battles_won):
        if v is not None:
            return v
    return 0


def battle_leaders(entries: Iterable[LeaderboardEntry], limit: Optional[int] = None) -> List[LeaderboardEntry]:
    out = [e for e in entries if battle_points(e) > 0]
    return out if limit is None else out[:limit]


def current_user_entry(entries: Iterable[LeaderboardEntry]) -> Optional[LeaderboardEntry]:
    return next((e for e in entries if e.is_current_user), None)
