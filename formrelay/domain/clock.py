"""UTC time helpers shared by domain and service code."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns them without tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def start_of_month(now: datetime) -> datetime:
    """Midnight UTC on the first day of ``now``'s calendar month."""
    return as_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
