"""Notice window and daily cap rules applied on both the read and write paths."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from slotbook.scheduling.timezones import local_datetime, local_today


@dataclass(frozen=True)
class BookingPolicy:
    duration_minutes: int
    buffer_minutes: int
    max_bookings_per_day: int
    min_notice_hours: int
    max_advance_days: int

    @classmethod
    def from_settings(cls, settings) -> 'BookingPolicy':
        return cls(
            duration_minutes=settings.appointment_duration_minutes,
            buffer_minutes=settings.buffer_time_minutes,
            max_bookings_per_day=settings.max_bookings_per_day,
            min_notice_hours=settings.min_notice_hours,
            max_advance_days=settings.max_advance_days,
        )


def earliest_bookable(now: datetime, min_notice_hours: int) -> datetime:
    return now + timedelta(hours=min_notice_hours)


def latest_bookable_date(now: datetime, max_advance_days: int, tz: tzinfo) -> date:
    return local_today(now, tz) + timedelta(days=max_advance_days)


def meets_notice(slot_start: datetime, now: datetime, min_notice_hours: int) -> bool:
    return slot_start >= earliest_bookable(now, min_notice_hours)


def within_advance_window(target_date: date, now: datetime, max_advance_days: int, tz: tzinfo) -> bool:
    return target_date <= latest_bookable_date(now, max_advance_days, tz)


def is_eligible(slot_start: datetime, now: datetime, policy: BookingPolicy, tz: tzinfo) -> bool:
    local_date = slot_start.astimezone(tz).date()
    return (
        meets_notice(slot_start, now, policy.min_notice_hours)
        and within_advance_window(local_date, now, policy.max_advance_days, tz)
    )


def day_bounds(target_date: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Inclusive [start of day, end of day] for a client-local calendar date."""
    start = local_datetime(target_date, time.min, tz)
    next_start = local_datetime(target_date + timedelta(days=1), time.min, tz)
    return start, next_start.astimezone(timezone.utc) - timedelta(microseconds=1)


def has_reached_daily_cap(confirmed_count: int, max_bookings_per_day: int) -> bool:
    return confirmed_count >= max_bookings_per_day
