"""External busy-time providers (e.g. a synced calendar) consulted next to stored bookings."""

from datetime import datetime
from typing import Protocol

from slotbook.scheduling.conflicts import Interval


class ConflictSource(Protocol):
    async def busy_intervals(self, client_id: str, range_start: datetime, range_end: datetime) -> list[Interval]:
        """Aware [start, end) intervals that must not be booked."""
        ...


class NoExternalConflicts:
    async def busy_intervals(self, client_id: str, range_start: datetime, range_end: datetime) -> list[Interval]:
        return []

