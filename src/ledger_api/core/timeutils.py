"""Timestamp helpers.

Timestamps are persisted as naive UTC datetimes so that SQL Server and SQLite
round-trip them identically.
"""

from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def local_to_utc(day: date, at: time | None, timezone_name: str) -> datetime:
    """Interpret a wall-clock date/time in ``timezone_name`` and return naive UTC.

    Unknown timezone names are treated as UTC.
    """
    try:
        zone = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        zone = ZoneInfo("UTC")
    local = datetime.combine(day, at or time(0, 0), tzinfo=zone)
    return to_naive_utc(local)
