"""
Centralized timezone utilities for the application.

All relay deadlines and timestamps are kept timezone-aware in UTC so that
comparisons between webhook-supplied instants and local clocks are safe.
"""

from datetime import datetime
from typing import Union
import pytz


def now_utc() -> datetime:
    """
    Get the current datetime in UTC.

    Returns:
        Timezone-aware current datetime
    """
    return datetime.now(pytz.UTC)


def now_utc_isoformat() -> str:
    """
    Get the current UTC datetime as an ISO-8601 string.

    Returns:
        Current datetime in UTC as ISO format string
    """
    return now_utc().isoformat()


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` in UTC, assuming UTC when it carries no timezone."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def parse_datetime_utc(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO-8601 string (or pass through a datetime) into aware UTC.

    A trailing ``Z`` is accepted since JavaScript clients emit it.

    Raises:
        ValueError: If the string is not ISO-8601
    """
    if isinstance(value, datetime):
        return ensure_utc(value)

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(
            f"Failed to parse datetime '{value}'. Provide ISO-8601 like '2025-09-01T09:00:00Z'. Error: {e}"
        ) from e
    return ensure_utc(parsed)
