"""UTC time helpers shared by the stores and the aggregators."""

from __future__ import annotations

import calendar
from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def month_start(value: datetime) -> datetime:
    """Truncate to the first instant of the calendar month (UTC)."""
    return as_utc(value).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def months_ago(now: datetime, months: int) -> datetime:
    """Same wall-clock instant `months` calendar months earlier.

    The day is clamped to the target month's length, so 31 March minus
    one month is 28/29 February (matching Postgres interval arithmetic).
    """
    index = now.year * 12 + (now.month - 1) - months
    year, month0 = divmod(index, 12)
    day = min(now.day, calendar.monthrange(year, month0 + 1)[1])
    return now.replace(year=year, month=month0 + 1, day=day)
