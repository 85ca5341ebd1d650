"""Conversions between client-local wall clock time and stored UTC instants."""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def client_zone(timezone_name: str | None) -> tzinfo:
    if not timezone_name:
        return timezone.utc
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning('Unknown timezone %r, falling back to UTC', timezone_name)
        return timezone.utc


def local_datetime(target_date: date, wall_time: time, tz: tzinfo) -> datetime:
    return datetime.combine(target_date, wall_time, tzinfo=tz)


def as_aware(value: datetime, tz: tzinfo) -> datetime:
    """Attach `tz` to naive input; convert aware input to `tz`."""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def to_storage(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError('Refusing to store a naive datetime.')
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_storage(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def local_today(now: datetime, tz: tzinfo) -> date:
    return now.astimezone(tz).date()


def add_minutes(value: datetime, minutes: int) -> datetime:
    """Elapsed-time addition; stays correct when a DST change falls inside the span."""
    shifted = value.astimezone(timezone.utc) + timedelta(minutes=minutes)
    return shifted.astimezone(value.tzinfo)
