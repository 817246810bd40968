"""Time utility functions for ledger data."""

import math
from datetime import datetime, timezone
from typing import Optional, Union


def get_current_utc() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc(timestamp: Union[int, float, datetime]) -> datetime:
    """Convert a datetime or Unix timestamp to an aware UTC datetime."""
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            return timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc)

    elif isinstance(timestamp, (int, float)):
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    else:
        raise ValueError(f"Unsupported timestamp type: {type(timestamp)}")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) to UTC, or None if unparseable."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    # Ledger record times carry up to nanoseconds; fromisoformat takes microseconds.
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for i, ch in enumerate(tail):
            if not ch.isdigit():
                rest = tail[i:]
                break
            digits += ch
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}" if digits else head + rest
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def isoformat_z(dt: datetime) -> str:
    """Millisecond ISO-8601 UTC string with a ``Z`` suffix."""
    dt = to_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def difference_in_days(later: datetime, earlier: datetime) -> int:
    """Whole days between two datetimes, truncated toward zero."""
    seconds = (to_utc(later) - to_utc(earlier)).total_seconds()
    return int(seconds / 86400)


def ceil_days(later: datetime, earlier: datetime) -> int:
    """Days between two datetimes, rounded up."""
    seconds = (to_utc(later) - to_utc(earlier)).total_seconds()
    return math.ceil(seconds / 86400)
