# {success, data, message} envelope and failure classification
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from .types import FetchResult

REJECTION_STATUSES = (403, 409)


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    HTTP = "http"
    PARSE = "parse"
    REJECTION = "rejection"


class Envelope(BaseModel):
    success: bool = False
    data: Any = None
    message: Optional[str] = None
    error: Optional[str] = None


class Outcome(BaseModel):
    """What a service call resolved to. ``value`` is set only when ``ok``."""

    ok: bool
    status: int = 0
    kind: Optional[FailureKind] = None
    message: Optional[str] = None
    value: Any = None


def read_envelope(result: FetchResult) -> Envelope:
    raw = result.json()
    if isinstance(raw, dict):
        try:
            return Envelope.model_validate(raw)
        except ValidationError:
            return Envelope(success=False, message="Malformed response envelope", data=raw)
    # bare arrays/scalars are treated as the data itself
    return Envelope(success=result.ok and raw is not None, data=raw)


def classify(result: FetchResult, env: Envelope) -> Optional[FailureKind]:
    if result.transport_failed:
        return FailureKind.TRANSPORT
    if result.status in REJECTION_STATUSES:
        return FailureKind.REJECTION
    if result.status >= 400 or not result.ok:
        return FailureKind.HTTP
    if result.body.malformed:
        return FailureKind.PARSE
    if not env.success:
        return FailureKind.REJECTION
    return None


def to_outcome(result: FetchResult, extract: Optional[Callable[[Envelope], Any]] = None,
               default_message: str = "Request failed") -> Outcome:
    env = read_envelope(result)
    kind = classify(result, env)
    if kind is None and extract is not None:
        try:
            value = extract(env)
        except (ValidationError, KeyError, TypeError, ValueError, OverflowError) as e:
            return Outcome(ok=False, status=result.status, kind=FailureKind.PARSE,
                           message=f"Unexpected response shape: {e}")
        if value is None:
            return Outcome(ok=False, status=result.status, kind=FailureKind.PARSE,
                           message=env.message or default_message)
        return Outcome(ok=True, status=result.status, message=env.message, value=value)
    if kind is None:
        return Outcome(ok=True, status=result.status, message=env.message, value=env.data)
    # an HTML error page says nothing useful; keep the status instead
    server_message = None if result.body.malformed and kind != FailureKind.PARSE else env.message
    message = server_message or f"{default_message} (status: {result.status})"
    return Outcome(ok=False, status=result.status, kind=kind, message=message)
