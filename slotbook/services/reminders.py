"""Reminder sweep for appointments starting roughly a day from now.

Safe to run repeatedly: `reminder_sent` is only set after a successful send, so a
crash between sending and flagging can produce a duplicate but never a skip.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import async_sessionmaker

from slotbook.core.config import Settings
from slotbook.scheduling.timezones import client_zone, from_storage
from slotbook.services import repository
from slotbook.services.notifications import AppointmentNotice, Notifier

logger = logging.getLogger(__name__)


@dataclass
class ReminderSweepResult:
    sent: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.total == 0:
            return 'No reminders to send'
        return f'Sent {self.sent} reminders'


async def send_due_reminders(
    sessionmaker: async_sessionmaker,
    notifier: Notifier,
    settings: Settings,
    now: datetime,
) -> ReminderSweepResult:
    window_start = now + timedelta(hours=settings.reminder_window_start_hours)
    window_end = now + timedelta(hours=settings.reminder_window_end_hours)

    async with sessionmaker() as session:
        due = await repository.list_due_reminders(session, window_start, window_end)

    result = ReminderSweepResult(total=len(due))
    for appointment, client in due:
        start = from_storage(appointment.start_time)
        notice = AppointmentNotice(
            appointment_id=appointment.id,
            client_name=client.name,
            customer_name=appointment.customer_name,
            customer_email=appointment.customer_email,
            start_time=start.astimezone(client_zone(client.timezone)),
            duration_minutes=int((appointment.end_time - appointment.start_time).total_seconds() // 60),
            cancel_url=settings.cancel_url(client.booking_slug, appointment.id, appointment.cancellation_token),
        )
        try:
            delivered = await notifier.send_reminder(notice)
        except Exception as exc:
            logger.exception('Reminder for appointment %s raised', appointment.id)
            result.errors.append(f'Error processing appointment {appointment.id}: {exc}')
            continue

        if not delivered:
            result.errors.append(f'Failed to send reminder for appointment {appointment.id}')
            continue

        async with sessionmaker() as session:
            async with session.begin():
                await repository.mark_reminder_sent(session, appointment.id)
        result.sent += 1

    if result.total:
        logger.info('Reminder sweep: %s of %s sent', result.sent, result.total)
    return result
