"""Operator-side management of clients, their booking settings and weekly rules."""

import logging
import uuid
from datetime import time

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.errors import BookingError, ErrorCode, not_found
from slotbook.models.appointment import Appointment
from slotbook.models.availability import AvailabilityRule
from slotbook.models.client import DEFAULT_TIMEZONE, Client
from slotbook.models.client_settings import (
    DEFAULT_APPOINTMENT_DURATION_MINUTES,
    DEFAULT_BUFFER_TIME_MINUTES,
    DEFAULT_MAX_ADVANCE_DAYS,
    DEFAULT_MAX_BOOKINGS_PER_DAY,
    DEFAULT_MIN_NOTICE_HOURS,
    ClientSettings,
)
from slotbook.services import repository

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    'appointment_duration_minutes',
    'buffer_time_minutes',
    'max_bookings_per_day',
    'min_notice_hours',
    'max_advance_days',
)

CLIENT_FIELDS = ('name', 'email', 'phone', 'timezone', 'is_active')


def default_settings(client_id: str) -> ClientSettings:
    return ClientSettings(
        id=str(uuid.uuid4()),
        client_id=client_id,
        appointment_duration_minutes=DEFAULT_APPOINTMENT_DURATION_MINUTES,
        buffer_time_minutes=DEFAULT_BUFFER_TIME_MINUTES,
        max_bookings_per_day=DEFAULT_MAX_BOOKINGS_PER_DAY,
        min_notice_hours=DEFAULT_MIN_NOTICE_HOURS,
        max_advance_days=DEFAULT_MAX_ADVANCE_DAYS,
    )


async def get_agency_client(session: AsyncSession, agency_id: str, client_id: str) -> Client:
    client = await repository.get_client(session, client_id)
    if client is None or client.agency_id != agency_id:
        raise not_found('Client not found.')
    return client


async def create_client(
    session: AsyncSession,
    agency_id: str,
    name: str,
    booking_slug: str,
    timezone: str = DEFAULT_TIMEZONE,
    email: str | None = None,
    phone: str | None = None,
) -> Client:
    """Create a client together with its settings row (defaults)."""
    client = Client(
        id=str(uuid.uuid4()),
        agency_id=agency_id,
        name=name,
        booking_slug=booking_slug,
        timezone=timezone,
        email=email,
        phone=phone,
        is_active=True,
        booking_version=0,
    )
    session.add(client)
    session.add(default_settings(client.id))
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise BookingError(
            ErrorCode.VALIDATION_ERROR,
            'Booking slug is already taken.',
            {'booking_slug': 'Already in use'},
        ) from exc
    return client


async def get_or_create_settings(session: AsyncSession, client_id: str) -> ClientSettings:
    client_settings = await repository.get_client_settings(session, client_id)
    if client_settings is None:
        client_settings = default_settings(client_id)
        session.add(client_settings)
        await session.flush()
    return client_settings


async def update_settings(session: AsyncSession, client_id: str, values: dict[str, int]) -> ClientSettings:
    client_settings = await get_or_create_settings(session, client_id)
    for field_name in SETTINGS_FIELDS:
        if field_name in values:
            setattr(client_settings, field_name, values[field_name])
    await session.commit()
    return client_settings


async def replace_rules(
    session: AsyncSession,
    client_id: str,
    rules: list[tuple[int, time, time, bool]],
) -> list[AvailabilityRule]:
    """Replace the weekly schedule; one rule per weekday."""
    weekdays = [day_of_week for day_of_week, _, _, _ in rules]
    if len(weekdays) != len(set(weekdays)):
        raise BookingError(ErrorCode.VALIDATION_ERROR, 'Only one availability rule is allowed per weekday.')

    await session.execute(delete(AvailabilityRule).where(AvailabilityRule.client_id == client_id))
    for day_of_week, start_time, end_time, is_available in rules:
        session.add(
            AvailabilityRule(
                id=str(uuid.uuid4()),
                client_id=client_id,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                is_available=is_available,
            )
        )
    await session.commit()

    return await repository.list_rules(session, client_id)


async def list_agency_clients(session: AsyncSession, agency_id: str) -> list[Client]:
    result = await session.execute(
        select(Client).where(Client.agency_id == agency_id).order_by(Client.name.asc(), Client.id.asc())
    )
    return list(result.scalars().all())


async def update_client(session: AsyncSession, client: Client, values: dict) -> Client:
    """Apply the given profile fields; `is_active=False` closes the booking page."""
    for field_name in CLIENT_FIELDS:
        if field_name in values:
            setattr(client, field_name, values[field_name])
    await session.commit()
    logger.info('Updated client %s (%s)', client.id, ', '.join(sorted(values)) or 'no changes')
    return client


async def delete_client(session: AsyncSession, client: Client) -> None:
    """Remove a client with its settings, weekly rules and appointments."""
    client_id = client.id
    await session.execute(delete(Appointment).where(Appointment.client_id == client_id))
    await session.execute(delete(AvailabilityRule).where(AvailabilityRule.client_id == client_id))
    await session.execute(delete(ClientSettings).where(ClientSettings.client_id == client_id))
    await session.delete(client)
    await session.commit()
    logger.info('Deleted client %s', client_id)
