"""Read path: the ordered list of bookable slots for one client and day."""

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Iterable

from slotbook.scheduling.conflicts import Interval, filter_conflicting_starts
from slotbook.scheduling.policies import BookingPolicy, has_reached_daily_cap, is_eligible
from slotbook.scheduling.time_grid import WeeklyRule, generate_slot_starts
from slotbook.scheduling.timezones import add_minutes


def display_label(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = 'AM' if value.hour < 12 else 'PM'
    return f'{hour}:{value.minute:02d} {suffix}'


@dataclass(frozen=True)
class Slot:
    start_time: datetime
    end_time: datetime
    display_label: str

    @property
    def time(self) -> str:
        return self.start_time.strftime('%H:%M')

    def as_public_dict(self) -> dict[str, str]:
        return {'time': self.time, 'display': self.display_label}


def compute_available_slots(
    *,
    rule: WeeklyRule | None,
    policy: BookingPolicy,
    target_date: date,
    tz: tzinfo,
    now: datetime,
    busy: Iterable[Interval] = (),
    confirmed_that_day: int = 0,
) -> list[Slot]:
    if has_reached_daily_cap(confirmed_that_day, policy.max_bookings_per_day):
        return []

    starts = generate_slot_starts(rule, policy.duration_minutes, policy.buffer_minutes, target_date, tz)
    starts = filter_conflicting_starts(starts, policy.duration_minutes, busy, policy.buffer_minutes)

    return [
        Slot(
            start_time=start,
            end_time=add_minutes(start, policy.duration_minutes),
            display_label=display_label(start),
        )
        for start in starts
        if is_eligible(start, now, policy, tz)
    ]
