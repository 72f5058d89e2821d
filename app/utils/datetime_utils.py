"""
UTC helpers for submission timestamps.

SQLite hands back naive datetimes even for DateTime(timezone=True) columns;
as_utc() makes them comparable with aware values.
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(dt: datetime | None) -> datetime | None:
    """Return dt with tzinfo=UTC if naive, or None if dt is None."""
    if dt is None:
        return None
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt


def seconds_from(now: datetime | None, seconds: int) -> datetime:
    """Point in time `seconds` after `now` (default: current UTC time)."""
    return (now or utc_now()) + timedelta(seconds=seconds)


def iso_or_none(dt: datetime | None) -> str | None:
    """ISO string for JSON payloads (system events)."""
    return as_utc(dt).isoformat() if dt is not None else None
