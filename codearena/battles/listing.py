from datetime import timezone
from typing import Iterable, List, Optional

from .models import Battle

SUPPORTED_LANGUAGES = ("python", "cpp", "java")


def normalize_language(value: Optional[str]) -> str:
    if not value:
        return "python"
    lang = str(value).lower()
    if lang in SUPPORTED_LANGUAGES:
        return lang
    if lang.startswith("py"):
        return "python"
    if lang.startswith("java") and "script" not in lang:
        return "java"
    if "cpp" in lang or lang == "c++":
        return "cpp"
    return "python"


def _created_key(b: Battle) -> float:
    if b.created_at is None:
        return 0.0
    ts = b.created_at if b.created_at.tzinfo else b.created_at.replace(tzinfo=timezone.utc)
    return ts.timestamp()


def filter_open_battles(battles: Iterable[Battle], search: str = "",
                        difficulty: str = "all", language: str = "all") -> List[Battle]:
    """Search/difficulty/language filtering for joinable battles, newest first."""
    term = (search or "").strip().lower()
    out: List[Battle] = []
    for b in battles:
        if difficulty != "all" and b.difficulty != difficulty:
            continue
        if language != "all" and b.language != language:
            continue
        if term and not any(term in (s or "").lower()
                            for s in (b.title, b.challenge_title, b.creator.username)):
            continue
        out.append(b)
    out.sort(key=_created_key, reverse=True)
    return out
