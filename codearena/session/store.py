import json
from pathlib import Path
from typing import Optional, Union

import structlog

log = structlog.get_logger(__name__)


class SessionStore:
    """Holds the bearer token and the signed-in username.

    Written only by explicit login/logout; the fetch layer only reads it.
    """

    def __init__(self, token: Optional[str] = None, username: Optional[str] = None) -> None:
        self._token = token or None
        self._username = username or None

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def username(self) -> Optional[str]:
        return self._username

    def login(self, token: str, username: Optional[str] = None) -> None:
        self._token = token or None
        self._username = username or None

    def logout(self) -> None:
        self._token = None
        self._username = None

    def authorization_header(self) -> Optional[str]:
        if not self._token:
            return None
        return f"Bearer {self._token}"


def load_session(path: Union[str, Path]) -> SessionStore:
    p = Path(path).expanduser()
    if not p.exists():
        return SessionStore()
    try:
        with p.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("session.unreadable", path=str(p), error=str(exc))
        return SessionStore()
    if not isinstance(raw, dict):
        return SessionStore()
    return SessionStore(token=raw.get("token"), username=raw.get("username"))


def save_session(store: SessionStore, path: Union[str, Path]) -> None:
    p = Path(path).expanduser()
    if store.token is None:
        if p.exists():
            p.unlink()
        return
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        json.dump({"token": store.token, "username": store.username}, f)
