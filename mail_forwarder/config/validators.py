"""Additional validation utilities for configuration."""

import warnings
from datetime import date
from typing import Any, Dict, List

LONG_WINDOW_DAYS = 366


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check merged configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary (file values plus CLI overrides)

    Returns:
        List of warning messages
    """
    warning_messages = []

    run = config_dict.get("run", {})
    if not isinstance(run, dict):
        return warning_messages

    start = run.get("date_range_start")
    end = run.get("date_range_end")
    if isinstance(start, str):
        start = _try_parse_date(start)
    if isinstance(end, str):
        end = _try_parse_date(end)
    if isinstance(start, date) and isinstance(end, date):
        span = (end - start).days + 1
        if span > LONG_WINDOW_DAYS:
            warning_messages.append(
                f"Date range covers {span} days; large searches may exceed the poll timeout"
            )

    if run.get("test_mode") and run.get("assume_yes"):
        warning_messages.append("assume_yes has no effect in test mode")

    polling = config_dict.get("polling", {})
    if isinstance(polling, dict) and polling.get("max_consecutive_status_errors") == 1:
        warning_messages.append(
            "max_consecutive_status_errors=1 makes a single transient status error fatal"
        )

    return warning_messages


def _try_parse_date(value: str):
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages using Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
