"""Next-fire computation for report schedule cadences.

Pure functions: given "now" and a cadence, return the next instant the
schedule should fire. The result is always strictly after now and its time
of day always equals the configured hour:minute.

Policies:
- Weekly schedules whose target weekday is today skip to next week, even if
  the configured time has not passed yet (never same-day).
- Biweekly adds one extra week on top of the weekly offset.
- Monthly/quarterly/annually advance 1/3/12 months from now and pin the day
  of month, clamped to the last day of the target month (day 31 in April
  becomes April 30, in February the 28th or 29th).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from rentala.core.datetime_utils import add_months, at_time_of_day, sunday_based_weekday
from rentala.core.errors import NextFireError
from rentala.models.schedule import ScheduleFrequency

DEFAULT_WEEKDAY = 1  # Monday, with 0 = Sunday
DEFAULT_DAY_OF_MONTH = 1
DEFAULT_HOUR = 9
DEFAULT_MINUTE = 0
DEFAULT_MAX_ATTEMPTS = 3

MONTH_STEPS = {
    ScheduleFrequency.MONTHLY: 1,
    ScheduleFrequency.QUARTERLY: 3,
    ScheduleFrequency.ANNUALLY: 12,
}


@dataclass(frozen=True)
class Cadence:
    """Frequency plus anchor fields that determine when a schedule fires."""

    frequency: ScheduleFrequency
    day_of_week: int | None = None
    day_of_month: int | None = None
    hour: int = DEFAULT_HOUR
    minute: int = DEFAULT_MINUTE

    @classmethod
    def from_schedule(cls, schedule: Any) -> "Cadence":
        """Build a cadence from any object carrying the schedule anchor fields."""
        return cls(
            frequency=ScheduleFrequency(schedule.frequency),
            day_of_week=schedule.day_of_week,
            day_of_month=schedule.day_of_month,
            hour=DEFAULT_HOUR if schedule.hour is None else schedule.hour,
            minute=DEFAULT_MINUTE if schedule.minute is None else schedule.minute,
        )


def _candidate(
    now: datetime,
    frequency: ScheduleFrequency,
    day_of_week: int,
    day_of_month: int,
    hour: int,
    minute: int,
) -> datetime:
    if frequency in (ScheduleFrequency.WEEKLY, ScheduleFrequency.BIWEEKLY):
        offset = (day_of_week - sunday_based_weekday(now) + 7) % 7 or 7
        if frequency == ScheduleFrequency.BIWEEKLY:
            offset += 7
        target = now + timedelta(days=offset)
    else:
        target = add_months(now, MONTH_STEPS[frequency], day=day_of_month)

    return at_time_of_day(target, hour, minute)


def next_fire(
    now: datetime,
    cadence: Cadence,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> datetime:
    """
    Compute the next fire instant for a cadence.

    If a candidate is not strictly after now, the anchor day is bumped by
    one and the computation retried, up to max_attempts times.

    Args:
        now: Reference instant (naive UTC)
        cadence: Frequency and anchors
        max_attempts: Bound on anchor-bump retries

    Returns:
        Next fire instant, strictly greater than now

    Raises:
        NextFireError: If no valid instant was found within max_attempts
    """
    day_of_week = DEFAULT_WEEKDAY if cadence.day_of_week is None else cadence.day_of_week
    day_of_month = cadence.day_of_month or DEFAULT_DAY_OF_MONTH

    for _ in range(max_attempts):
        candidate = _candidate(
            now,
            cadence.frequency,
            day_of_week,
            day_of_month,
            cadence.hour,
            cadence.minute,
        )
        if candidate > now:
            return candidate

        day_of_week = (day_of_week + 1) % 7
        day_of_month += 1

    raise NextFireError(
        f"No next fire time for {cadence.frequency.value} cadence after {max_attempts} attempts"
    )
