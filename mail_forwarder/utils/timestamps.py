"""Timestamp utilities for UTC handling and date-window boundaries.

This module provides utilities for working with timestamps in UTC:
- Getting current UTC time
- Converting timezone-naive to timezone-aware UTC
- Turning calendar dates into UTC day boundaries
- Formatting timestamps for logs, API filters and file names
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware datetimes are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def day_start_utc(day: date) -> datetime:
    """Return midnight UTC at the start of ``day``.

    Example:
        >>> day_start_utc(date(2024, 6, 1)).isoformat()
        '2024-06-01T00:00:00+00:00'
    """
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def day_after_start_utc(day: date) -> datetime:
    """Return midnight UTC at the start of the day following ``day``.

    Used as the exclusive upper bound when an inclusive end date has to be
    expressed as a timestamp comparison.
    """
    return day_start_utc(day + timedelta(days=1))


def format_timestamp(dt: datetime, include_microseconds: bool = False) -> str:
    """Format a datetime as ISO 8601 string in UTC with a 'Z' suffix.

    Example:
        >>> format_timestamp(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))
        '2024-06-01T12:00:00Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""

    if include_microseconds:
        return dt_utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def timestamped_filename(prefix: str, suffix: str = ".log", now: Optional[datetime] = None) -> str:
    """Build a file name stamped with the local time of the run.

    Example:
        >>> timestamped_filename("mail_forward", now=datetime(2024, 6, 30, 8, 5, 9))
        'mail_forward_20240630_080509.log'
    """
    now = now or datetime.now()
    return f"{prefix}_{now.strftime('%Y%m%d_%H%M%S')}{suffix}"
