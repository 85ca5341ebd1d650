"""Candidate slot generation from a weekly working-hours rule."""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Protocol

from slotbook.scheduling.timezones import add_minutes, local_datetime


class WeeklyRule(Protocol):
    start_time: time
    end_time: time
    is_available: bool


def weekday_index(target_date: date) -> int:
    """Monday=0 ... Sunday=6, the numbering availability rules are stored with."""
    return target_date.weekday()


def working_window(
    rule: WeeklyRule | None,
    target_date: date,
    tz: tzinfo,
) -> tuple[datetime, datetime] | None:
    if rule is None or not rule.is_available:
        return None
    if rule.end_time <= rule.start_time:
        return None
    return local_datetime(target_date, rule.start_time, tz), local_datetime(target_date, rule.end_time, tz)


def generate_slot_starts(
    rule: WeeklyRule | None,
    duration_minutes: int,
    buffer_minutes: int,
    target_date: date,
    tz: tzinfo,
) -> list[datetime]:
    """Return slot starts spaced `duration + buffer` apart that finish by closing time.

    Stepping happens in UTC so a slot spanning a DST change still lasts exactly
    `duration_minutes`; the returned starts are in `tz`.
    """
    window = working_window(rule, target_date, tz)
    if window is None or duration_minutes <= 0:
        return []

    opens_at, closes_at = (bound.astimezone(timezone.utc) for bound in window)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=duration_minutes + max(buffer_minutes, 0))

    starts: list[datetime] = []
    current = opens_at
    while current + duration <= closes_at:
        starts.append(current.astimezone(tz))
        current += step

    return starts


def fits_working_hours(
    rule: WeeklyRule | None,
    start: datetime,
    duration_minutes: int,
    tz: tzinfo,
) -> bool:
    window = working_window(rule, start.astimezone(tz).date(), tz)
    if window is None:
        return False
    opens_at, closes_at = (bound.astimezone(timezone.utc) for bound in window)
    start = start.astimezone(timezone.utc)
    return opens_at <= start and add_minutes(start, duration_minutes) <= closes_at
