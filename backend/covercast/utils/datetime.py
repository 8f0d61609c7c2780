"""
Timezone helpers for restaurant-local calendar dates.

Transactions arrive as UTC (or naive, already-local) timestamps. Every
per-day grouping uses the restaurant's local calendar date so that a
late-evening sale is never shifted into the next day.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional

import pytz


def get_timezone(tz_name: Optional[str], default: str = "America/Los_Angeles") -> pytz.BaseTzInfo:
    """Resolve a tz database name, falling back to ``default`` for unknown names."""
    try:
        return pytz.timezone(tz_name or default)
    except pytz.UnknownTimeZoneError:
        return pytz.timezone(default)


def to_local(value: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """
    Convert a timestamp to restaurant-local time.
    
    Naive datetimes are treated as already local.
    """
    if value.tzinfo is None:
        return tz.localize(value)
    return value.astimezone(tz)


def local_date(value: datetime, tz: pytz.BaseTzInfo) -> date:
    """Restaurant-local calendar date of a timestamp."""
    return to_local(value, tz).date()


def local_today(tz: pytz.BaseTzInfo, now: Optional[datetime] = None) -> date:
    """Today's date in the restaurant's timezone."""
    current = now or datetime.now(pytz.UTC)
    if current.tzinfo is None:
        current = pytz.UTC.localize(current)
    return current.astimezone(tz).date()


def utc_dates_spanning(day: date, tz: pytz.BaseTzInfo) -> List[date]:
    """UTC calendar dates overlapped by the local calendar ``day`` (one or two dates)."""
    start = tz.localize(datetime.combine(day, time.min)).astimezone(pytz.UTC)
    end = tz.localize(datetime.combine(day + timedelta(days=1), time.min)).astimezone(pytz.UTC)
    last = (end - timedelta(microseconds=1)).date()
    dates = [start.date()]
    while dates[-1] < last:
        dates.append(dates[-1] + timedelta(days=1))
    return dates
