"""Overlap tests between candidate slots and buffer-padded busy intervals."""

from datetime import datetime, timezone
from typing import Iterable

from slotbook.scheduling.timezones import add_minutes

Interval = tuple[datetime, datetime]


def pad_interval(interval: Interval, buffer_minutes: int) -> Interval:
    start, end = interval
    return add_minutes(start, -buffer_minutes), add_minutes(end, buffer_minutes)


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open interval intersection: [start, end) and [other_start, other_end)."""
    return start < other_end and end > other_start


def conflicts_with_any(
    start: datetime,
    duration_minutes: int,
    busy: Iterable[Interval],
    buffer_minutes: int,
) -> bool:
    start = start.astimezone(timezone.utc)
    end = add_minutes(start, duration_minutes)
    for interval in busy:
        padded_start, padded_end = pad_interval(interval, buffer_minutes)
        if overlaps(start, end, padded_start, padded_end):
            return True
    return False


def filter_conflicting_starts(
    starts: Iterable[datetime],
    duration_minutes: int,
    busy: Iterable[Interval],
    buffer_minutes: int,
) -> list[datetime]:
    """Drop every start whose slot intersects a padded busy interval, keeping order.

    Only existing bookings are padded; candidates keep their grid positions.
    """
    busy_intervals = list(busy)
    return [
        start
        for start in starts
        if not conflicts_with_any(start, duration_minutes, busy_intervals, buffer_minutes)
    ]
