# config environment
import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .constants import (
    BATTLE_POLL_SEC,
    BATTLES_POLL_SEC,
    DEFAULT_TIMEOUT_MS,
    LEADERBOARD_PAGE_SIZE,
    LEADERBOARD_POLL_SEC,
    RETRY_BACKOFF_MS,
)

class Cfg(BaseModel):
    api_base_url: str = ""
    origin: Optional[str] = None
    request_timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0)
    retry_backoff_ms: int = Field(RETRY_BACKOFF_MS, ge=0)
    leaderboard_poll_sec: float = Field(LEADERBOARD_POLL_SEC, gt=0)
    battles_poll_sec: float = Field(BATTLES_POLL_SEC, gt=0)
    battle_poll_sec: float = Field(BATTLE_POLL_SEC, gt=0)
    session_file: Path = Path("~/.codearena/session.json")
    log_level: str = "INFO"

    def site_origin(self) -> Optional[str]:
        """Origin used for root-relative requests: explicit setting, else scheme+host of the API base."""
        if self.origin:
            return self.origin.rstrip("/")
        parts = urlsplit(self.api_base_url)
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}"
        return None

class ViewCfg(BaseModel):
    sort_by: str = "points"
    direction: str = "desc"
    page_size: int = Field(LEADERBOARD_PAGE_SIZE, gt=0)
    institution: str = "all"
    board_type: Optional[str] = None

def load_cfg(env_file: Optional[str] = None) -> Cfg:
    if env_file:
        load_dotenv(env_file)
    return Cfg(
        api_base_url=os.environ.get("ARENA_API_BASE", ""),
        origin=os.environ.get("ARENA_ORIGIN") or None,
        request_timeout_ms=int(os.environ.get("ARENA_REQUEST_TIMEOUT_MS", str(DEFAULT_TIMEOUT_MS))),
        retry_backoff_ms=int(os.environ.get("ARENA_RETRY_BACKOFF_MS", str(RETRY_BACKOFF_MS))),
        leaderboard_poll_sec=float(os.environ.get("ARENA_LEADERBOARD_POLL_SEC", str(LEADERBOARD_POLL_SEC))),
        battles_poll_sec=float(os.environ.get("ARENA_BATTLES_POLL_SEC", str(BATTLES_POLL_SEC))),
        battle_poll_sec=float(os.environ.get("ARENA_BATTLE_POLL_SEC", str(BATTLE_POLL_SEC))),
        session_file=Path(os.environ.get("ARENA_SESSION_FILE", "~/.codearena/session.json")).expanduser(),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )

def load_view_cfg(path: str) -> ViewCfg:
    if not os.path.exists(path):
        return ViewCfg()
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    return ViewCfg(**(raw.get("leaderboard") or {}))
