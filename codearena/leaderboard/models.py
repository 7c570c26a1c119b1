from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from codearena.core.values import first_present, maybe_float, maybe_int


class _Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Institution(_Camel):
    name: str = ""
    short_name: Optional[str] = Field(None, alias="shortName")
    logo: Optional[str] = None


_INT_STATS = frozenset({
    "challengesSolved", "challenges_solved", "battlesWon", "battles_won", "battlesLost", "battles_lost",
    "hackathonsParticipated", "hackathons_participated", "hackathonsWon", "hackathons_won",
    "currentStreak", "current_streak", "longestStreak", "longest_streak",
})
_FLOAT_STATS = frozenset({
    "challengePoints", "challenge_points", "battlePoints", "battle_points", "avgRating", "avg_rating",
})


class LeaderboardStats(_Camel):
    challenges_solved: int = Field(0, alias="challengesSolved")
    challenge_points: Optional[float] = Field(None, alias="challengePoints")
    battles_won: int = Field(0, alias="battlesWon")
    battle_points: Optional[float] = Field(None, alias="battlePoints")
    battles_lost: int = Field(0, alias="battlesLost")
    hackathons_participated: int = Field(0, alias="hackathonsParticipated")
    hackathons_won: int = Field(0, alias="hackathonsWon")
    current_streak: int = Field(0, alias="currentStreak")
    longest_streak: int = Field(0, alias="longestStreak")
    avg_rating: float = Field(0.0, alias="avgRating")
    specializations: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _nulls_to_defaults(cls, data: Any) -> Any:
        # unusable values fall back to the field default instead of failing the row
        if not isinstance(data, dict):
            return data
        out = {}
        for k, v in data.items():
            if k in _INT_STATS:
                v = maybe_int(v)
            elif k in _FLOAT_STATS:
                v = maybe_float(v)
            elif k == "specializations":
                v = [s for s in v if isinstance(s, str)] if isinstance(v, list) else None
            if v is not None:
                out[k] = v
        return out


class LeaderboardEntry(_Camel):
    """One leaderboard row. ``total_points`` is the adjusted total, falling back to raw points."""

    id: Union[int, str]
    rank: Optional[int] = None
    previous_rank: Optional[int] = Field(None, alias="previousRank")
    username: str = ""
    full_name: str = Field("", alias="fullName")
    avatar: Optional[str] = None
    institution: Optional[Institution] = None
    location: Optional[str] = None
    total_points: float = Field(0.0, alias="totalPoints", ge=0)
    raw_points: Optional[float] = Field(None, alias="rawPoints", ge=0)
    battle_points: Optional[float] = Field(None, alias="battlePoints")
    stats: LeaderboardStats = Field(default_factory=LeaderboardStats)
    is_current_user: bool = Field(False, alias="isCurrentUser")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        d = dict(data)
        if d.get("id") is None:
            d["id"] = first_present(d, "_id", "username") or ""
        raw = maybe_float(first_present(d, "rawPoints", "raw_points"))
        adjusted = maybe_float(first_present(d, "totalPoints", "total_points"))
        d.pop("raw_points", None)
        d.pop("total_points", None)
        d["rawPoints"] = None if raw is None else max(0.0, raw)
        total = adjusted if adjusted is not None else raw
        d["totalPoints"] = max(0.0, total) if total is not None else 0.0
        bp = maybe_float(first_present(d, "battlePoints", "battle_points"))
        d.pop("battle_points", None)
        d["battlePoints"] = bp
        d["rank"] = maybe_int(d.get("rank"))
        d["previousRank"] = maybe_int(first_present(d, "previousRank", "previous_rank"))
        d.pop("previous_rank", None)
        if not isinstance(d.get("stats"), dict):
            d["stats"] = {}
        if not isinstance(d.get("institution"), dict) or not (
            d["institution"].get("name") or d["institution"].get("shortName")
        ):
            d["institution"] = None
        for key in ("fullName", "username"):
            if d.get(key) is None:
                d.pop(key, None)
        return d


class LeaderboardSnapshot(BaseModel):
    entries: List[LeaderboardEntry]
    asof_ts: float
    board_type: Optional[str] = None


class RankedEntry(BaseModel):
    display_rank: int
    entry: LeaderboardEntry
