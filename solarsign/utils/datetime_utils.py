"""
Timezone-aware datetime utilities.

All datetime operations should use these helpers to ensure consistent
timezone handling across the codebase.
"""
from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return dt as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso_millis(dt: datetime) -> str:
    """
    Format datetime as ISO-8601 UTC with millisecond precision and Z suffix.

    Example: 2025-08-29T10:15:30.123Z
    """
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """
    Parse a stored timestamp, ensuring timezone-aware UTC.

    Handles:
    - ISO format strings with Z suffix
    - ISO format strings with +00:00 offset
    - Naive datetimes (assumed UTC)
    - Already timezone-aware datetimes

    Returns:
        Timezone-aware datetime in UTC, or None if input is None/empty/invalid
    """
    if value is None:
        return None

    if isinstance(value, str):
        if not value:
            return None
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    elif isinstance(value, datetime):
        dt = value
    else:
        return None

    return ensure_utc(dt)


def format_stamp_datetime(dt: datetime) -> str:
    """Short stamp date: 'Aug 29, 10:15 AM'."""
    dt = ensure_utc(dt)
    return f"{dt.strftime('%b')} {dt.day}, {dt.strftime('%I:%M %p')}"


def format_short_date(dt: datetime) -> str:
    """British short date: 29/08/2025."""
    return ensure_utc(dt).strftime("%d/%m/%Y")
