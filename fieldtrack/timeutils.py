"""Timestamp normalization between the wire formats and epoch milliseconds."""

import logging
import math
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

TimestampLike = Union[int, float, str, datetime, None]

# Largest instant a JavaScript Date can hold, in ms
MAX_EPOCH_MS = 8.64e15


def epoch_ms_from_dt(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_iso(text: str) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without a trailing 'Z'); None if unparseable."""
    s = text.strip()
    if not s:
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _epoch_ms_or_zero(value: float) -> int:
    if abs(value) > MAX_EPOCH_MS or not math.isfinite(value):
        logger.debug(f"Out of range timestamp {value!r}, using 0")
        return 0
    return int(value)


def normalize_timestamp(value: TimestampLike) -> int:
    """
    Normalize a GPS sample timestamp to integer epoch milliseconds.

    Numbers are taken as epoch-ms, numeric strings likewise, other strings are
    parsed as ISO-8601. Anything unparseable, non-finite or beyond the Date
    range becomes 0 so ordering never fails.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, datetime):
        return epoch_ms_from_dt(value)
    if isinstance(value, (int, float)):
        return _epoch_ms_or_zero(value)
    text = str(value).strip()
    try:
        return _epoch_ms_or_zero(float(text))
    except ValueError:
        pass
    dt = parse_iso(text)
    if dt is None:
        logger.debug(f"Unparseable timestamp {value!r}, using 0")
        return 0
    return epoch_ms_from_dt(dt)


def to_iso(value: TimestampLike) -> Optional[str]:
    """
    Format a query bound as ISO-8601 UTC with milliseconds ("2024-05-01T08:00:00.000Z").

    Epoch-ms numbers and datetimes are converted; strings pass through unchanged.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        dt = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    else:
        dt = datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
