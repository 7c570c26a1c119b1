# lenient coercion for loosely typed server payloads
import math
from typing import Any, Mapping, Optional


def maybe_int(value: Any) -> Optional[int]:
    if value in (None, "") or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    f = maybe_float(value)
    if f is None:
        return None
    return int(f)


def maybe_float(value: Any) -> Optional[float]:
    """Float or None. NaN and +/-Infinity (json.loads accepts both) count as missing."""
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return f if math.isfinite(f) else None


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """First value under ``keys`` that is not None (a ``??`` chain)."""
    for k in keys:
        v = data.get(k)
        if v is not None:
            return v
    return None


def as_id(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
