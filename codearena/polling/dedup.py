import hashlib
import json
from typing import Any, Callable, List, Optional

import structlog
from pydantic import BaseModel

log = structlog.get_logger(__name__)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return value


def fingerprint(snapshot: Any) -> str:
    """Content hash of a snapshot. Object keys are sorted, list order is kept."""
    text = json.dumps(_plain(snapshot), sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class SnapshotBus:
    """In-process pub/sub for applied snapshots.

    - subscribe(handler): registers a callable that takes the new snapshot
    - publish(snapshot): pushes it to all subscribers
    """

    def __init__(self) -> None:
        self._subscribers: List[Callable[[Any], Any]] = []

    def subscribe(self, handler: Callable[[Any], Any]) -> Callable[[], None]:
        self._subscribers.append(handler)
        return lambda: self._subscribers.remove(handler) if handler in self._subscribers else None

    def publish(self, snapshot: Any) -> None:
        for handler in list(self._subscribers):
            try:
                handler(snapshot)
            except Exception:
                # one broken subscriber must not starve the others
                log.exception("snapshot_bus.handler_failed", handler=repr(handler))


class SnapshotGate:
    """Remembers the last applied snapshot hash; the caller owns the gate."""

    def __init__(self, bus: Optional[SnapshotBus] = None) -> None:
        self.bus = bus or SnapshotBus()
        self.last_hash: Optional[str] = None
        self.current: Any = None

    def offer(self, snapshot: Any) -> bool:
        h = fingerprint(snapshot)
        if h == self.last_hash:
            return False
        self.last_hash = h
        self.current = snapshot
        self.bus.publish(snapshot)
        return True

    def reset(self) -> None:
        self.last_hash = None
        self.current = None
