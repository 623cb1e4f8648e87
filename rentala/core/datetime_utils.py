"""Centralized datetime utilities.

All functions work with naive UTC datetimes for database compatibility
(SQLAlchemy models store naive UTC).

Usage:
    from rentala.core.datetime_utils import utc_now, add_months, whole_days_between

    now = utc_now()
    next_quarter = add_months(now, 3, day=15)
    days_overdue = whole_days_between(payment.due_date, now)
"""

import calendar
from datetime import UTC, date, datetime, time

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Get current UTC time as naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def days_in_month(year: int, month: int) -> int:
    """Number of days in the given month."""
    return calendar.monthrange(year, month)[1]


def add_months(dt: datetime, months: int, day: int | None = None) -> datetime:
    """Shift a datetime by whole months, optionally pinning the day of month.

    The day is clamped to the last day of the resulting month, so day 31
    in a 30-day month lands on the 30th (and on the 28th/29th in February).

    Args:
        dt: Starting datetime
        months: Number of months to add (may be negative)
        day: Target day of month; defaults to dt.day

    Returns:
        Datetime with the same time of day
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    target_day = dt.day if day is None else day
    return dt.replace(year=year, month=month, day=min(target_day, days_in_month(year, month)))


def at_time_of_day(dt: datetime, hour: int, minute: int) -> datetime:
    """Return dt with the time of day replaced by hour:minute:00."""
    return dt.replace(hour=hour, minute=minute, second=0, microsecond=0)


def sunday_based_weekday(dt: datetime | date) -> int:
    """Weekday with 0 = Sunday ... 6 = Saturday (stored schedule convention)."""
    return (dt.weekday() + 1) % 7


def whole_days_between(start: datetime | date, end: datetime | date) -> int:
    """Floor of (end - start) in days.

    Dates are treated as midnight of that day.
    """
    start_dt = start if isinstance(start, datetime) else datetime.combine(start, time.min)
    end_dt = end if isinstance(end, datetime) else datetime.combine(end, time.min)
    return int((end_dt - start_dt).total_seconds() // SECONDS_PER_DAY)


def month_start(dt: datetime) -> datetime:
    """First instant of dt's calendar month."""
    return datetime(dt.year, dt.month, 1)
