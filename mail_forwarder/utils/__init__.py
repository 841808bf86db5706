"""Utility functions for hashing and time handling."""

from .timestamps import (
    day_after_start_utc,
    day_start_utc,
    ensure_utc,
    format_timestamp,
    timestamped_filename,
    utc_now,
)

__all__ = [
    # Timestamps
    "utc_now",
    "ensure_utc",
    "day_start_utc",
    "day_after_start_utc",
    "format_timestamp",
    "timestamped_filename",
]
