"""
Apple timestamp normalization.

The Messages database stores dates relative to the Cocoa epoch
(2001-01-01 00:00:00 UTC). Older rows count seconds, newer rows count
nanoseconds, and a single database can contain both.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Seconds between 1970-01-01 and 2001-01-01
APPLE_EPOCH_OFFSET = 978307200

APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)

# Values above this magnitude are nanoseconds
NANOSECOND_THRESHOLD = 1e15


def _coerce(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


def apple_seconds(raw: Any) -> Optional[float]:
    """Return seconds since the Cocoa epoch, or None when raw is not a usable number"""
    value = _coerce(raw)
    if value is None:
        return None
    if abs(value) > NANOSECOND_THRESHOLD:
        return value / 1e9
    return value


def apple_timestamp_to_datetime(raw: Any) -> datetime:
    """
    Convert a raw Messages ``date`` value to an aware UTC datetime.

    Missing or non-finite values yield the current time instead of failing,
    so a display never breaks on a damaged row.

    Args:
        raw: Integer seconds or nanoseconds since 2001-01-01

    Returns:
        Timezone-aware datetime in UTC
    """
    seconds = apple_seconds(raw)
    if seconds is None:
        logger.debug("Invalid timestamp %r, substituting current time", raw)
        return datetime.now(timezone.utc)

    try:
        return datetime.fromtimestamp(seconds + APPLE_EPOCH_OFFSET, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        logger.warning("Timestamp %r is out of range, substituting current time", raw)
        return datetime.now(timezone.utc)


def datetime_to_apple_timestamp(dt: datetime, nanoseconds: bool = True) -> int:
    """Inverse of apple_timestamp_to_datetime, used when building fixtures and filters"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = (dt - APPLE_EPOCH).total_seconds()
    if nanoseconds:
        return int(round(seconds * 1_000_000_000))
    return int(round(seconds))


def normalized_seconds_sql(column: str) -> str:
    """SQL expression ordering a ``date`` column in seconds regardless of its unit"""
    return (
        f"(CASE WHEN ABS({column}) > 1000000000000000 "
        f"THEN {column} / 1000000000.0 ELSE {column} END)"
    )
