"""Shared utility functions for date handling in report requests and metrics."""

from datetime import date, datetime, timedelta, timezone


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_utc_date(value):
    """Parse a date or timestamp into the calendar date it falls on in UTC.

    Accepts ``date`` / ``datetime`` objects and ISO strings
    (``2024-03-01``, ``2024-03-01T22:15:00Z``, ``2024-03-01T22:15:00+02:00``).
    Returns None for empty input; raises ValueError for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return to_utc(datetime.fromisoformat(text)).date()
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}") from None


def day_start(day: date) -> datetime:
    """UTC midnight at the start of ``day``."""
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def next_day_start(day: date) -> datetime:
    """UTC midnight at the start of the day after ``day`` (exclusive bound)."""
    return day_start(day) + timedelta(days=1)
