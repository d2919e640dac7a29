"""Time helpers for subscription expiry math."""
from datetime import datetime, timezone

from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp such as ``2025-06-01T10:00:00.000Z``.

    Raises:
        ValueError: If the string is not a timestamp.
    """
    return as_utc(date_parser.isoparse(value))


def to_iso(value: datetime) -> str:
    """Format a datetime as an ISO 8601 UTC string."""
    return as_utc(value).isoformat()


class SystemClock:
    """Wall-clock time source."""

    def now(self) -> datetime:
        return utc_now()


def get_clock() -> SystemClock:
    """FastAPI dependency for the request's time source."""
    return SystemClock()
