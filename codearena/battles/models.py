import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from codearena.core.values import as_id, first_present, maybe_int

DEFAULT_DURATION_MINUTES = 30
DEFAULT_PRIZE_POINTS = 25


class BattleStatus(str, Enum):
    WAITING = "waiting"
    INVITED = "invited"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


_STATUS_ALIASES = {"active": BattleStatus.IN_PROGRESS}


def parse_status(value: Any) -> BattleStatus:
    text = str(value or "").strip().lower()
    if text in _STATUS_ALIASES:
        return _STATUS_ALIASES[text]
    try:
        return BattleStatus(text)
    except ValueError:
        return BattleStatus.WAITING


class BattleUser(BaseModel):
    id: Optional[Union[int, str]] = None
    username: str = ""
    rating: Optional[float] = None
    avatar: Optional[str] = None


class ChallengeExample(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    input: str = ""
    output: str = ""


class ChallengeRef(BaseModel):
    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    input_format: Optional[str] = None
    output_format: Optional[str] = None
    constraints: Optional[str] = None
    examples: List[ChallengeExample] = Field(default_factory=list)
    supported_languages: List[str] = Field(default_factory=list)
    points: int = 0


def _user(raw: Any) -> Optional[Dict[str, Any]]:
    if isinstance(raw, BattleUser):
        return raw.model_dump()
    if isinstance(raw, str) and raw:
        return {"username": raw}
    if isinstance(raw, dict) and raw.get("username"):
        return raw
    return None


class Battle(BaseModel):
    """A timed 1v1 match. Payload defaults are applied here and nowhere else."""

    id: str
    title: str = ""
    challenge_id: Optional[str] = None
    challenge_title: str = ""
    challenge: Optional[ChallengeRef] = None
    creator: BattleUser
    opponent: Optional[BattleUser] = None
    invited: Optional[str] = None
    status: BattleStatus = BattleStatus.WAITING
    duration_minutes: int = Field(DEFAULT_DURATION_MINUTES, gt=0)
    difficulty: str = "easy"
    language: str = "python"
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    prize_points: int = Field(DEFAULT_PRIZE_POINTS, ge=0)
    winner: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        d = dict(data)
        d["id"] = as_id(first_present(d, "id", "_id")) or ""
        d["title"] = str(d.get("title") or "")
        d["challenge_title"] = str(d.get("challenge_title") or d["title"])
        d["challenge_id"] = as_id(first_present(d, "challenge_id", "challengeId"))
        d["creator"] = _user(d.get("creator")) or {"username": "community"}
        d["opponent"] = _user(d.get("opponent"))
        d["invited"] = str(d["invited"]) if d.get("invited") else None
        status = parse_status(d.get("status"))
        d["status"] = status

        duration = maybe_int(d.get("duration_minutes"))
        d["duration_minutes"] = duration if duration and duration > 0 else DEFAULT_DURATION_MINUTES
        prize = maybe_int(d.get("prize_points"))
        d["prize_points"] = DEFAULT_PRIZE_POINTS if prize is None else max(0, prize)
        d["difficulty"] = d.get("difficulty") or "easy"
        d["language"] = d.get("language") or "python"

        if status in (BattleStatus.WAITING, BattleStatus.INVITED):
            d["started_at"] = None
        for key in ("created_at", "started_at", "completed_at"):
            if d.get(key) == "":
                d[key] = None
        d["winner"] = d.get("winner") or None
        if not isinstance(d.get("challenge"), (dict, ChallengeRef)):
            d["challenge"] = None
        return d

    @property
    def participants(self) -> List[str]:
        names = [self.creator.username]
        if self.opponent and self.opponent.username:
            names.append(self.opponent.username)
        return names

    def is_participant(self, username: Optional[str]) -> bool:
        return bool(username) and username in self.participants


class BattleHistoryRow(BaseModel):
    id: str
    challenge_title: str
    opponent_username: str
    result: Literal["won", "lost", "draw"]
    duration: int
    completed_at: Optional[datetime] = None
    points_earned: int = 0

    @classmethod
    def from_battle(cls, battle: Battle, current_user: Optional[str]) -> "BattleHistoryRow":
        if battle.winner:
            result = "won" if battle.winner == current_user else "lost"
        else:
            result = "draw"
        opponent = battle.opponent.username if battle.opponent else ""
        if current_user and opponent == current_user:
            opponent = battle.creator.username
        return cls(
            id=battle.id,
            challenge_title=battle.challenge_title,
            opponent_username=opponent,
            result=result,
            duration=battle.duration_minutes,
            completed_at=battle.completed_at,
            points_earned=battle.prize_points,
        )


class RunResult(BaseModel):
    output: str

    @classmethod
    def from_data(cls, data: Any) -> "RunResult":
        if isinstance(data, dict):
            out = data.get("output") or data.get("stdout")
            if out:
                return cls(output=str(out))
        return cls(output=json.dumps(data, default=str))


class SubmissionResult(BaseModel):
    submission_id: Optional[str] = None
    status: Optional[str] = None
    points: int = 0
    passed: Optional[int] = None
    total: Optional[int] = None
    test_results: List[Dict[str, Any]] = Field(default_factory=list)
    error_message: Optional[str] = None
    code: Optional[str] = None
    battle_completed: bool = False
    winner: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        d = dict(data)
        d["submission_id"] = as_id(d.get("submission_id"))
        d["points"] = maybe_int(first_present(d, "points", "score")) or 0
        d["passed"] = maybe_int(d.get("passed"))
        d["total"] = maybe_int(d.get("total"))
        if not isinstance(d.get("test_results"), list):
            d["test_results"] = []
        d["battle_completed"] = bool(d.get("battle_completed"))
        return d

    @property
    def accepted(self) -> bool:
        return self.status == "accepted"
