"""Availability lookups and the booking transaction.

Every write re-validates against live data. The commit step runs inside a
transaction whose first statement locks the client row, so two requests for the
same client are serialized by the database rather than by request ordering.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook.core.config import Settings
from slotbook.core.errors import BookingError, ErrorCode, internal_error, not_found
from slotbook.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    Appointment,
    generate_cancellation_token,
)
from slotbook.models.client import Client
from slotbook.models.client_settings import (
    DEFAULT_APPOINTMENT_DURATION_MINUTES,
    DEFAULT_BUFFER_TIME_MINUTES,
    DEFAULT_MAX_ADVANCE_DAYS,
    DEFAULT_MAX_BOOKINGS_PER_DAY,
    DEFAULT_MIN_NOTICE_HOURS,
    ClientSettings,
)
from slotbook.scheduling.conflicts import conflicts_with_any
from slotbook.scheduling.policies import (
    BookingPolicy,
    day_bounds,
    has_reached_daily_cap,
    meets_notice,
    within_advance_window,
)
from slotbook.scheduling.slots import Slot, compute_available_slots
from slotbook.scheduling.time_grid import fits_working_hours, weekday_index
from slotbook.scheduling.timezones import add_minutes, as_aware, client_zone, from_storage, to_storage
from slotbook.services import repository
from slotbook.services.conflict_sources import ConflictSource, NoExternalConflicts
from slotbook.services.notifications import AppointmentNotice, NotificationDispatcher

logger = logging.getLogger(__name__)

DEFAULT_POLICY = BookingPolicy(
    duration_minutes=DEFAULT_APPOINTMENT_DURATION_MINUTES,
    buffer_minutes=DEFAULT_BUFFER_TIME_MINUTES,
    max_bookings_per_day=DEFAULT_MAX_BOOKINGS_PER_DAY,
    min_notice_hours=DEFAULT_MIN_NOTICE_HOURS,
    max_advance_days=DEFAULT_MAX_ADVANCE_DAYS,
)

_UNSET = object()

T = TypeVar('T')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def policy_for(client_settings: ClientSettings | None) -> BookingPolicy:
    if client_settings is None:
        return DEFAULT_POLICY
    return BookingPolicy.from_settings(client_settings)


@dataclass(frozen=True)
class BookingRequest:
    client_id: str
    start_time: datetime  # naive values are read in the client's timezone
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    notes: str | None = None


class BookingService:
    def __init__(
        self,
        sessionmaker: async_sessionmaker,
        settings: Settings,
        dispatcher: NotificationDispatcher,
        conflict_source: ConflictSource | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._settings = settings
        self._dispatcher = dispatcher
        self._conflict_source = conflict_source or NoExternalConflicts()
        self._clock = clock

    async def available_slots(self, client_identifier: str, target_date: date) -> list[Slot]:
        """Bookable slots for a client-local date; unknown or inactive clients have none."""
        now = self._clock()
        async with self._sessionmaker() as session:
            client = await repository.get_active_client(session, client_identifier)
            if client is None:
                return []

            policy = policy_for(await repository.get_client_settings(session, client.id))
            tz = client_zone(client.timezone)
            rule = await repository.get_rule_for_weekday(session, client.id, weekday_index(target_date))
            if rule is None or not rule.is_available:
                return []

            day_start, day_end = day_bounds(target_date, tz)
            # padding of appointments on the adjacent days still reaches into this one
            range_start = add_minutes(day_start, -policy.buffer_minutes)
            range_end = add_minutes(day_end, policy.buffer_minutes)
            stored = await repository.list_confirmed_intervals(session, client.id, range_start, range_end)
            confirmed_that_day = await repository.count_confirmed_between(session, client.id, day_start, day_end)

        busy = [(from_storage(start), from_storage(end)) for start, end in stored]
        busy += await self._conflict_source.busy_intervals(client.id, range_start, range_end)

        return compute_available_slots(
            rule=rule,
            policy=policy,
            target_date=target_date,
            tz=tz,
            now=now,
            busy=busy,
            confirmed_that_day=confirmed_that_day,
        )

    async def create_booking(self, request: BookingRequest) -> Appointment:
        now = self._clock()
        async with self._sessionmaker() as session:
            client = await repository.get_active_client(session, request.client_id)
            if client is None:
                raise not_found('Client not found or inactive.')

            policy = policy_for(await repository.get_client_settings(session, client.id))
            tz = client_zone(client.timezone)
            start = as_aware(request.start_time, tz).replace(second=0, microsecond=0).astimezone(timezone.utc)
            end = add_minutes(start, policy.duration_minutes)

            self._validate_timing(start, now, policy, tz)

            rule = await repository.get_rule_for_weekday(
                session, client.id, weekday_index(start.astimezone(tz).date())
            )
            if not fits_working_hours(rule, start, policy.duration_minutes, tz):
                raise BookingError(ErrorCode.VALIDATION_ERROR, 'The requested time is outside booking hours.')

        external_busy = await self._conflict_source.busy_intervals(
            client.id,
            start - timedelta(minutes=policy.buffer_minutes),
            end + timedelta(minutes=policy.buffer_minutes),
        )
        if conflicts_with_any(start, policy.duration_minutes, external_busy, policy.buffer_minutes):
            raise BookingError(ErrorCode.SLOT_UNAVAILABLE, 'This time slot is no longer available.')

        appointment = await self._retry_on_lock_contention(
            f'client {client.id}',
            lambda: self._commit(client, request, start, end, policy, tz),
        )
        logger.info('Booked appointment %s for client %s at %s', appointment.id, client.id, start.isoformat())

        self._dispatcher.confirmation(self._notice(appointment, client, tz))
        return appointment

    async def get_with_token(self, appointment_id: str, token: str) -> Appointment:
        async with self._sessionmaker() as session:
            appointment = await repository.get_appointment_with_token(session, appointment_id, token)
        if appointment is None:
            raise not_found('Appointment not found.')
        return appointment

    async def cancel_with_token(self, appointment_id: str, token: str) -> Appointment:
        """Customer self-service cancellation. A second attempt is NOT_FOUND, not a success."""
        async with self._sessionmaker() as session:
            async with session.begin():
                cancelled = await repository.cancel_with_token(session, appointment_id, token)
            if not cancelled:
                raise not_found('Appointment not found or already cancelled.')

            appointment = await repository.get_appointment(session, appointment_id)
            client = await repository.get_client(session, appointment.client_id)

        logger.info('Appointment %s cancelled by customer', appointment_id)
        self._dispatcher.cancellation(self._notice(appointment, client, client_zone(client.timezone)))
        return appointment

    async def get_for_agency(self, agency_id: str, appointment_id: str) -> Appointment:
        async with self._sessionmaker() as session:
            appointment, _ = await self._load_for_agency(session, agency_id, appointment_id)
        return appointment

    async def list_for_agency(self, agency_id: str, client_id: str | None = None) -> list[Appointment]:
        async with self._sessionmaker() as session:
            return await repository.list_agency_appointments(session, agency_id, client_id)

    async def update_as_operator(
        self,
        agency_id: str,
        appointment_id: str,
        status: str | None = None,
        notes=_UNSET,
    ) -> Appointment:
        """Operators may move an appointment to any status and edit its notes.

        Re-confirming a non-confirmed appointment goes through the same locked
        conflict and daily cap checks as a new booking, with the same retries.
        """
        if status is not None and status not in APPOINTMENT_STATUSES:
            raise BookingError(
                ErrorCode.VALIDATION_ERROR,
                'Invalid appointment status.',
                {'status': f'Must be one of: {", ".join(APPOINTMENT_STATUSES)}'},
            )

        appointment, client, previous_status = await self._retry_on_lock_contention(
            f'appointment {appointment_id}',
            lambda: self._apply_operator_update(agency_id, appointment_id, status, notes),
        )

        if status == STATUS_CANCELLED and previous_status != STATUS_CANCELLED:
            self._dispatcher.cancellation(self._notice(appointment, client, client_zone(client.timezone)))
        return appointment

    async def _apply_operator_update(
        self,
        agency_id: str,
        appointment_id: str,
        status: str | None,
        notes,
    ) -> tuple[Appointment, Client, str]:
        async with self._sessionmaker() as session:
            appointment, client = await self._load_for_agency(session, agency_id, appointment_id)
            previous_status = appointment.status

            if status == STATUS_CONFIRMED and previous_status != STATUS_CONFIRMED:
                policy = policy_for(await repository.get_client_settings(session, client.id))
                await self._check_capacity_locked(
                    session,
                    client.id,
                    from_storage(appointment.start_time),
                    from_storage(appointment.end_time),
                    policy,
                    client_zone(client.timezone),
                )

            if status is not None:
                appointment.status = status
            if notes is not _UNSET:
                appointment.notes = notes
            appointment.updated_at = to_storage(self._clock())
            await session.commit()
        return appointment, client, previous_status

    def _validate_timing(self, start: datetime, now: datetime, policy: BookingPolicy, tz: tzinfo) -> None:
        if start < now:
            raise BookingError(ErrorCode.BOOKING_IN_PAST, 'Cannot book appointments in the past.')
        if not meets_notice(start, now, policy.min_notice_hours):
            raise BookingError(
                ErrorCode.VALIDATION_ERROR,
                f'Bookings require at least {policy.min_notice_hours} hours notice.',
            )
        if not within_advance_window(start.astimezone(tz).date(), now, policy.max_advance_days, tz):
            raise BookingError(
                ErrorCode.VALIDATION_ERROR,
                f'Bookings can be made at most {policy.max_advance_days} days in advance.',
            )

    async def _retry_on_lock_contention(self, subject: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a locked write, starting over on lock timeouts up to `booking_max_attempts` times."""
        attempts = self._settings.booking_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except OperationalError as exc:
                if attempt == attempts:
                    logger.exception('Locked write for %s failed after %s attempts', subject, attempts)
                    raise internal_error() from exc
                logger.warning('Lock contention for %s (attempt %s): %s', subject, attempt, exc)
        raise internal_error()

    async def _commit(
        self,
        client: Client,
        request: BookingRequest,
        start: datetime,
        end: datetime,
        policy: BookingPolicy,
        tz: tzinfo,
    ) -> Appointment:
        async with self._sessionmaker() as session:
            async with session.begin():
                await self._check_capacity_locked(session, client.id, start, end, policy, tz)

                appointment = Appointment(
                    id=str(uuid.uuid4()),
                    client_id=client.id,
                    start_time=to_storage(start),
                    end_time=to_storage(end),
                    customer_name=request.customer_name,
                    customer_email=request.customer_email,
                    customer_phone=request.customer_phone,
                    notes=request.notes,
                    status=STATUS_CONFIRMED,
                    cancellation_token=generate_cancellation_token(),
                    reminder_sent=False,
                    created_at=to_storage(self._clock()),
                    updated_at=to_storage(self._clock()),
                )
                session.add(appointment)
        return appointment

    async def _check_capacity_locked(
        self,
        session: AsyncSession,
        client_id: str,
        start: datetime,
        end: datetime,
        policy: BookingPolicy,
        tz: tzinfo,
    ) -> None:
        if not await repository.lock_client_for_booking(session, client_id):
            raise not_found('Client not found or inactive.')

        conflict = await repository.find_padded_conflict(session, client_id, start, end, policy.buffer_minutes)
        if conflict is not None:
            logger.debug('Slot %s for client %s conflicts with appointment %s', start, client_id, conflict.id)
            raise BookingError(ErrorCode.SLOT_UNAVAILABLE, 'This time slot is no longer available.')

        day_start, day_end = day_bounds(start.astimezone(tz).date(), tz)
        booked_that_day = await repository.count_confirmed_between(session, client_id, day_start, day_end)
        if has_reached_daily_cap(booked_that_day, policy.max_bookings_per_day):
            raise BookingError(ErrorCode.MAX_BOOKINGS_REACHED, 'Maximum bookings reached for this day.')

    async def _load_for_agency(
        self,
        session: AsyncSession,
        agency_id: str,
        appointment_id: str,
    ) -> tuple[Appointment, Client]:
        appointment = await repository.get_appointment(session, appointment_id)
        client = await repository.get_client(session, appointment.client_id) if appointment else None
        if appointment is None or client is None or client.agency_id != agency_id:
            raise not_found('Appointment not found.')
        return appointment, client

    def _notice(self, appointment: Appointment, client: Client, tz: tzinfo) -> AppointmentNotice:
        start = from_storage(appointment.start_time)
        duration = int((appointment.end_time - appointment.start_time).total_seconds() // 60)
        return AppointmentNotice(
            appointment_id=appointment.id,
            client_name=client.name,
            customer_name=appointment.customer_name,
            customer_email=appointment.customer_email,
            start_time=start.astimezone(tz),
            duration_minutes=duration,
            cancel_url=self._settings.cancel_url(client.booking_slug, appointment.id, appointment.cancellation_token),
        )
