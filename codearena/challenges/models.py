from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator

from codearena.core.values import as_id, maybe_int

DIFFICULTIES = ("easy", "medium", "hard")


def _day(value: Any) -> Optional[date]:
    # "2024-05-01" or a full timestamp; anything else is dropped
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


class Challenge(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    difficulty: str = "easy"
    tags: List[str] = Field(default_factory=list)
    points: int = Field(0, ge=0)
    publish_date: Optional[date] = None
    is_daily: bool = False
    solved_count: int = Field(0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        d = dict(data)
        d["id"] = as_id(d.get("id")) or ""
        d["title"] = str(d.get("title") or "")
        d["description"] = str(d.get("description") or "")
        difficulty = str(d.get("difficulty") or "").lower()
        d["difficulty"] = difficulty if difficulty in DIFFICULTIES else "easy"
        tags = d.get("tags")
        d["tags"] = [str(t) for t in tags if t is not None] if isinstance(tags, list) else []
        d["points"] = max(0, maybe_int(d.get("points")) or 0)
        d["solved_count"] = max(0, maybe_int(d.get("solved_count")) or 0)
        d["is_daily"] = bool(maybe_int(d.get("is_daily")) or d.get("is_daily") is True)
        d["publish_date"] = _day(d.get("publish_date"))
        return d


class ChallengePage(BaseModel):
    items: List[Challenge]
    page: int = 1
    per_page: int = 0
    total: int = 0
    total_pages: int = 1
