"""Async persistence queries used by the booking engine."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.models.appointment import Appointment, STATUS_CANCELLED, STATUS_CONFIRMED
from slotbook.models.availability import AvailabilityRule
from slotbook.models.client import Client
from slotbook.models.client_settings import ClientSettings
from slotbook.scheduling.timezones import to_storage


async def get_active_client(session: AsyncSession, identifier: str) -> Client | None:
    """Resolve a public booking identifier (client id or booking slug)."""
    result = await session.execute(
        select(Client).where(
            or_(Client.id == identifier, Client.booking_slug == identifier),
            Client.is_active.is_(True),
        )
    )
    return result.scalars().first()


async def get_client(session: AsyncSession, client_id: str) -> Client | None:
    return await session.get(Client, client_id)


async def get_client_settings(session: AsyncSession, client_id: str) -> ClientSettings | None:
    result = await session.execute(select(ClientSettings).where(ClientSettings.client_id == client_id))
    return result.scalars().first()


async def get_rule_for_weekday(session: AsyncSession, client_id: str, day_of_week: int) -> AvailabilityRule | None:
    result = await session.execute(
        select(AvailabilityRule).where(
            AvailabilityRule.client_id == client_id,
            AvailabilityRule.day_of_week == day_of_week,
        )
    )
    return result.scalars().first()


async def list_rules(session: AsyncSession, client_id: str) -> list[AvailabilityRule]:
    result = await session.execute(
        select(AvailabilityRule)
        .where(AvailabilityRule.client_id == client_id)
        .order_by(AvailabilityRule.day_of_week.asc())
    )
    return list(result.scalars().all())


async def list_confirmed_intervals(
    session: AsyncSession,
    client_id: str,
    range_start: datetime,
    range_end: datetime,
) -> list[tuple[datetime, datetime]]:
    """Confirmed appointments overlapping [range_start, range_end), whatever day they start on."""
    result = await session.execute(
        select(Appointment.start_time, Appointment.end_time).where(
            Appointment.client_id == client_id,
            Appointment.status == STATUS_CONFIRMED,
            Appointment.start_time < to_storage(range_end),
            Appointment.end_time > to_storage(range_start),
        ).order_by(Appointment.start_time.asc())
    )
    return [(start, end) for start, end in result.all()]


async def find_padded_conflict(
    session: AsyncSession,
    client_id: str,
    start: datetime,
    end: datetime,
    buffer_minutes: int,
) -> Appointment | None:
    """First confirmed appointment whose buffer-padded interval meets [start, end).

    `stored.start - buffer < end and stored.end + buffer > start`, rearranged so the
    padding lands on the bound parameters.
    """
    buffer = timedelta(minutes=buffer_minutes)
    result = await session.execute(
        select(Appointment).where(
            Appointment.client_id == client_id,
            Appointment.status == STATUS_CONFIRMED,
            Appointment.start_time < to_storage(end + buffer),
            Appointment.end_time > to_storage(start - buffer),
        ).limit(1)
    )
    return result.scalars().first()


async def count_confirmed_between(
    session: AsyncSession,
    client_id: str,
    range_start: datetime,
    range_end: datetime,
) -> int:
    result = await session.execute(
        select(func.count(Appointment.id)).where(
            Appointment.client_id == client_id,
            Appointment.status == STATUS_CONFIRMED,
            Appointment.start_time >= to_storage(range_start),
            Appointment.start_time <= to_storage(range_end),
        )
    )
    return int(result.scalar_one())


async def lock_client_for_booking(session: AsyncSession, client_id: str) -> bool:
    """Take the per-client write lock by bumping `booking_version`.

    Must be the first statement of the booking transaction: on PostgreSQL it holds the
    client row lock until commit, on SQLite it takes the database write lock.
    """
    result = await session.execute(
        update(Client)
        .where(Client.id == client_id, Client.is_active.is_(True))
        .values(booking_version=Client.booking_version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def cancel_with_token(session: AsyncSession, appointment_id: str, token: str) -> bool:
    """Confirmed -> cancelled in a single conditional write; False when nothing matched."""
    result = await session.execute(
        update(Appointment)
        .where(
            Appointment.id == appointment_id,
            Appointment.cancellation_token == token,
            Appointment.status == STATUS_CONFIRMED,
        )
        .values(status=STATUS_CANCELLED, updated_at=datetime.now(timezone.utc).replace(tzinfo=None))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def get_appointment(session: AsyncSession, appointment_id: str) -> Appointment | None:
    return await session.get(Appointment, appointment_id)


async def get_appointment_with_token(session: AsyncSession, appointment_id: str, token: str) -> Appointment | None:
    result = await session.execute(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.cancellation_token == token,
        )
    )
    return result.scalars().first()


async def list_agency_appointments(
    session: AsyncSession,
    agency_id: str,
    client_id: str | None = None,
) -> list[Appointment]:
    query = (
        select(Appointment)
        .join(Client, Client.id == Appointment.client_id)
        .where(Client.agency_id == agency_id)
        .order_by(Appointment.start_time.asc())
    )
    if client_id:
        query = query.where(Appointment.client_id == client_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def list_due_reminders(
    session: AsyncSession,
    window_start: datetime,
    window_end: datetime,
) -> list[tuple[Appointment, Client]]:
    result = await session.execute(
        select(Appointment, Client)
        .join(Client, Client.id == Appointment.client_id)
        .where(
            Appointment.status == STATUS_CONFIRMED,
            Appointment.reminder_sent.is_(False),
            Appointment.start_time >= to_storage(window_start),
            Appointment.start_time <= to_storage(window_end),
        )
        .order_by(Appointment.start_time.asc())
    )
    return [(appointment, client) for appointment, client in result.all()]


async def mark_reminder_sent(session: AsyncSession, appointment_id: str) -> None:
    await session.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .values(reminder_sent=True)
        .execution_options(synchronize_session=False)
    )
