"""Timestamp helpers: timestamps are stored as ISO 8601 text in UTC."""

from __future__ import annotations

from datetime import UTC, datetime

import pendulum


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 for storage and JSON serialization."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime.

    Accepts anything pendulum understands (ISO 8601 with ``T`` or space
    separator, with or without offset). Missing timezone means UTC.
    Returns None for a missing value, raises ValueError for unparseable input.
    """
    if value is None or not value.strip():
        return None
    try:
        parsed = pendulum.parse(value.strip(), tz="UTC", strict=False)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp: {value!r}") from exc
    if not isinstance(parsed, pendulum.Date):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if not isinstance(parsed, pendulum.DateTime):
        parsed = pendulum.datetime(parsed.year, parsed.month, parsed.day, tz="UTC")
    utc = parsed.in_timezone("UTC")
    return datetime(
        utc.year,
        utc.month,
        utc.day,
        utc.hour,
        utc.minute,
        utc.second,
        utc.microsecond,
        tzinfo=UTC,
    )
