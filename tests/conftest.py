import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone

import pytest
from sqlalchemy import delete
from sqlalchemy.pool import NullPool

from slotbook.core.config import Settings
from slotbook.database import build_engine, build_sessionmaker, init_database
from slotbook.models.agency import Agency
from slotbook.models.appointment import STATUS_CONFIRMED, Appointment, generate_cancellation_token
from slotbook.models.availability import AvailabilityRule
from slotbook.models.client import Client
from slotbook.models.client_settings import ClientSettings
from slotbook.models.user import User
from slotbook.services.booking import BookingService
from slotbook.services.notifications import NotificationDispatcher

# Monday 2026-01-05 10:00 UTC
FIXED_NOW = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@dataclass(frozen=True)
class WorkingHours:
    start_time: time
    end_time: time
    is_available: bool = True


class StaticConflictSource:
    """Fixed external busy intervals per client."""

    def __init__(self, intervals: dict | None = None) -> None:
        self._intervals = intervals or {}

    def block(self, client_id: str, start: datetime, end: datetime) -> None:
        self._intervals.setdefault(client_id, []).append((start, end))

    async def busy_intervals(self, client_id: str, range_start: datetime, range_end: datetime) -> list:
        return [
            (start, end)
            for start, end in self._intervals.get(client_id, [])
            if start < range_end and end > range_start
        ]


class RecordingNotifier:
    def __init__(self) -> None:
        self.confirmations = []
        self.reminders = []
        self.cancellations = []
        self.deliver = True
        self.raise_error = False

    async def send_confirmation(self, notice) -> bool:
        return self._record(self.confirmations, notice)

    async def send_reminder(self, notice) -> bool:
        return self._record(self.reminders, notice)

    async def send_cancellation(self, notice) -> bool:
        return self._record(self.cancellations, notice)

    def _record(self, sent: list, notice) -> bool:
        if self.raise_error:
            raise RuntimeError('mail server exploded')
        if self.deliver:
            sent.append(notice)
        return self.deliver


@dataclass
class Seeded:
    agency_id: str
    client_id: str
    booking_slug: str
    owner_email: str
    staff_email: str
    other_agency_id: str
    other_client_id: str
    rules: dict = field(default_factory=dict)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f'sqlite+aiosqlite:///{tmp_path / "slotbook-test.db"}',
        jwt_secret_key='test-secret',
        public_app_url='https://book.example.com',
        cron_secret='cron-secret',
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings, poolclass=NullPool)
    asyncio.run(init_database(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier)


@pytest.fixture
def service(sessionmaker, settings, dispatcher, clock) -> BookingService:
    return BookingService(sessionmaker, settings, dispatcher, clock=clock)


async def seed_database(sessionmaker, timezone_name: str = 'UTC', **policy) -> Seeded:
    """One agency with a client open Monday to Friday 09:00-12:00, plus an unrelated agency."""
    agency_id = str(uuid.uuid4())
    other_agency_id = str(uuid.uuid4())
    client_id = str(uuid.uuid4())
    other_client_id = str(uuid.uuid4())

    async with sessionmaker() as session:
        session.add_all([
            Agency(id=agency_id, name='Front Desk Agency'),
            Agency(id=other_agency_id, name='Elsewhere Agency'),
        ])
        await session.flush()
        session.add_all([
            User(id=str(uuid.uuid4()), email='owner@agency.test', role='agency_owner', agency_id=agency_id),
            User(id=str(uuid.uuid4()), email='staff@agency.test', role='staff', agency_id=agency_id),
            User(id=str(uuid.uuid4()), email='owner@elsewhere.test', role='agency_owner', agency_id=other_agency_id),
            Client(
                id=client_id,
                agency_id=agency_id,
                name='Acme Dental',
                booking_slug='acme-dental',
                timezone=timezone_name,
                is_active=True,
                booking_version=0,
            ),
            Client(
                id=other_client_id,
                agency_id=other_agency_id,
                name='Other Salon',
                booking_slug='other-salon',
                timezone='UTC',
                is_active=True,
                booking_version=0,
            ),
        ])
        await session.flush()
        session.add(
            ClientSettings(
                id=str(uuid.uuid4()),
                client_id=client_id,
                appointment_duration_minutes=policy.get('duration', 30),
                buffer_time_minutes=policy.get('buffer', 15),
                max_bookings_per_day=policy.get('max_per_day', 10),
                min_notice_hours=policy.get('min_notice', 24),
                max_advance_days=policy.get('max_advance', 30),
            )
        )
        for day_of_week in range(5):
            session.add(
                AvailabilityRule(
                    id=str(uuid.uuid4()),
                    client_id=client_id,
                    day_of_week=day_of_week,
                    start_time=time(9, 0),
                    end_time=time(12, 0),
                    is_available=True,
                )
            )
        await session.commit()

    return Seeded(
        agency_id=agency_id,
        client_id=client_id,
        booking_slug='acme-dental',
        owner_email='owner@agency.test',
        staff_email='staff@agency.test',
        other_agency_id=other_agency_id,
        other_client_id=other_client_id,
    )


async def insert_appointment(
    sessionmaker,
    client_id: str,
    start: datetime,
    duration_minutes: int = 30,
    status: str = STATUS_CONFIRMED,
    reminder_sent: bool = False,
) -> Appointment:
    start_utc = start.astimezone(timezone.utc).replace(tzinfo=None)
    appointment = Appointment(
        id=str(uuid.uuid4()),
        client_id=client_id,
        start_time=start_utc,
        end_time=start_utc + timedelta(minutes=duration_minutes),
        customer_name='Existing Customer',
        customer_email='existing@example.com',
        status=status,
        cancellation_token=generate_cancellation_token(),
        reminder_sent=reminder_sent,
        created_at=FIXED_NOW.replace(tzinfo=None),
        updated_at=FIXED_NOW.replace(tzinfo=None),
    )
    async with sessionmaker() as session:
        session.add(appointment)
        await session.commit()
    return appointment


@pytest.fixture
def seeded(sessionmaker) -> Seeded:
    return asyncio.run(seed_database(sessionmaker))


async def set_weekly_rule(sessionmaker, client_id: str, day_of_week: int, start_time: time, end_time: time) -> None:
    async with sessionmaker() as session:
        await session.execute(
            delete(AvailabilityRule).where(
                AvailabilityRule.client_id == client_id,
                AvailabilityRule.day_of_week == day_of_week,
            )
        )
        session.add(
            AvailabilityRule(
                id=str(uuid.uuid4()),
                client_id=client_id,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                is_available=True,
            )
        )
        await session.commit()
