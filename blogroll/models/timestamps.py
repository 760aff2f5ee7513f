"""Canonical timestamp format.

Every timestamp stored by blogroll is a UTC ISO-8601 string with millisecond
precision and a ``Z`` suffix, e.g. ``2024-01-01T12:00:00.000Z``. Strings in
this format sort in time order, which the store relies on for range filters.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime in the canonical format. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def now_timestamp() -> str:
    return format_timestamp(utcnow())


def days_ago(days: float, now: Optional[datetime] = None) -> str:
    """Canonical timestamp for ``now - days``."""
    return format_timestamp((now or utcnow()) - timedelta(days=days))


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed). Returns None if invalid."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
