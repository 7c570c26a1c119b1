# request / response types shared by the transports and the fetcher
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from codearena.config.constants import DEFAULT_TIMEOUT_MS

REASON_TIMEOUT = "timeout"
REASON_NETWORK = "network"

TIMEOUT_MESSAGE = "Request aborted (timeout)"
NETWORK_MESSAGE = "Network error"


class RequestDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    path: str
    relative_fallback: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None
    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0)

    def has_header(self, name: str) -> bool:
        name = name.lower()
        return any(k.lower() == name for k in self.headers)

    def with_header(self, name: str, value: str) -> "RequestDescriptor":
        headers = dict(self.headers)
        headers[name] = value
        return self.model_copy(update={"headers": headers})

    def retarget(self, url: str) -> "RequestDescriptor":
        return self.model_copy(update={"url": url, "relative_fallback": None})


class LazyBody:
    """Response body decoded on first access. Neither accessor raises."""

    def __init__(self, content: bytes = b"", encoding: Optional[str] = None,
                 synthetic: Optional[Dict[str, Any]] = None) -> None:
        self._content = content or b""
        self._encoding = encoding or "utf-8"
        self._synthetic = synthetic
        self._text: Optional[str] = None
        self._json: Any = None
        self._decoded = False
        self.malformed = False

    @property
    def content(self) -> bytes:
        return self._content

    def text(self) -> str:
        if self._text is None:
            try:
                self._text = self._content.decode(self._encoding, errors="replace")
            except LookupError:
                self._text = self._content.decode("utf-8", errors="replace")
        return self._text

    def json(self) -> Any:
        if self._decoded:
            return self._json
        self._decoded = True
        if self._synthetic is not None:
            self._json = dict(self._synthetic)
            return self._json
        raw = self.text().strip()
        if not raw:
            self._json = None
            return None
        try:
            self._json = json.loads(raw)
        except ValueError as exc:
            self.malformed = True
            self._json = {"success": False, "message": "Invalid JSON", "error": str(exc)}
        return self._json


@dataclass(frozen=True)
class FetchResult:
    status: int
    body: LazyBody = field(default_factory=LazyBody)
    url: str = ""
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def transport_failed(self) -> bool:
        return self.status == 0

    def json(self) -> Any:
        return self.body.json()

    def text(self) -> str:
        return self.body.text()

    @classmethod
    def failure(cls, reason: str, message: str, url: str = "", error: Optional[str] = None) -> "FetchResult":
        payload: Dict[str, Any] = {"success": False, "message": message}
        if error is not None:
            payload["error"] = error
        body = LazyBody((error or message).encode("utf-8"), synthetic=payload)
        return cls(status=0, body=body, url=url, reason=reason)
