"""
UTC datetime utilities for consistent timezone handling.

All datetime values in the system are timezone-aware UTC. Object keys
embed Unix milliseconds, so millisecond helpers live here too.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Return the current UTC datetime with timezone info."""
    return datetime.now(UTC)


def utc_now_ms() -> int:
    """Return the current time as integer Unix milliseconds."""
    return int(utc_now().timestamp() * 1000)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    Ensure a datetime is UTC-aware.

    - If None, returns None
    - If naive, assumes UTC and attaches timezone
    - If aware, converts to UTC

    Use at repository/persistence boundaries and when reading backend
    timestamps (boto3 and os.stat disagree on tz handling).
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def from_timestamp_utc(timestamp: float) -> datetime:
    """Create a UTC-aware datetime from a Unix timestamp in seconds."""
    return datetime.fromtimestamp(timestamp, tz=UTC)


def expires_in(seconds: int, now: datetime | None = None) -> datetime:
    """Return the UTC instant that lies seconds after now."""
    return (now or utc_now()) + timedelta(seconds=seconds)
