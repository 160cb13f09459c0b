"""Time utilities for the types package.

Log timestamps arrive as ISO-8601 strings (usually with a Z suffix) and are
compared at millisecond granularity.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional, Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Fractional seconds of any length; .NET writes 7 digits
_FRACTION_RE = re.compile(r"\.(\d+)(?=[+-]\d\d:?\d\d$|$)")


def _datetime_to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO format string with Z suffix."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(timespec="milliseconds") + "Z"


def _iso_to_datetime(iso_str: Optional[str]) -> Optional[datetime]:
    """Parse ISO format string to an aware UTC datetime."""
    if iso_str is None:
        return None
    # Remove Z suffix if present for parsing
    if iso_str.endswith("Z"):
        iso_str = iso_str[:-1]
    iso_str = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), iso_str, count=1)
    dt = datetime.fromisoformat(iso_str)
    return _as_utc(dt)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def coerce_timestamp(value: Union[str, datetime, int, float]) -> datetime:
    """Accept an ISO string, a datetime or epoch milliseconds."""
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        parsed = _iso_to_datetime(value)
        if parsed is not None:
            return parsed
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def to_millis(dt: datetime) -> int:
    """Milliseconds since the epoch."""
    return int(round((_as_utc(dt) - EPOCH).total_seconds() * 1000))


def millis_between(earlier: datetime, later: datetime) -> int:
    return to_millis(later) - to_millis(earlier)
