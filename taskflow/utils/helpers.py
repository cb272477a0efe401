"""Shared utility functions for services and blueprints.

utcnow:          timezone-aware "now"
ensure_utc:      normalise datetimes read back from SQLite (naive) to UTC
parse_datetime:  ISO-8601 string → aware datetime (raises ValueError)
parse_bool:      query-string flag parsing
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes, convert aware ones to UTC.

    SQLite stores DateTime(timezone=True) columns without an offset, so values
    come back naive even though every value written is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value):
    """Parse an ISO date or datetime string into an aware UTC datetime.

    Returns None for empty input. A bare date is taken as midnight UTC.
    A trailing ``Z`` is accepted.

    Raises:
        ValueError: for anything that is not ISO-8601.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid datetime {value!r}. Use ISO-8601.") from exc


def parse_bool(value, default=False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")
