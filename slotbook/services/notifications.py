"""Customer notifications: confirmation, reminder and cancellation messages.

Delivery is best effort. Senders report success as a bool and never raise into
the booking flow; the dispatcher runs them as background tasks.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.mime.text import MIMEText
from typing import Awaitable, Callable, Protocol

from slotbook.core.config import SmtpSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentNotice:
    appointment_id: str
    client_name: str
    customer_name: str
    customer_email: str
    start_time: datetime  # client-local
    duration_minutes: int
    cancel_url: str | None = None

    @property
    def date_label(self) -> str:
        return self.start_time.strftime('%A, %B %d, %Y').replace(' 0', ' ')

    @property
    def time_label(self) -> str:
        hour = self.start_time.hour % 12 or 12
        suffix = 'AM' if self.start_time.hour < 12 else 'PM'
        return f'{hour}:{self.start_time.minute:02d} {suffix}'


class Notifier(Protocol):
    async def send_confirmation(self, notice: AppointmentNotice) -> bool: ...

    async def send_reminder(self, notice: AppointmentNotice) -> bool: ...

    async def send_cancellation(self, notice: AppointmentNotice) -> bool: ...


def confirmation_message(notice: AppointmentNotice) -> tuple[str, str]:
    subject = f'Appointment Confirmed - {notice.client_name}'
    lines = [
        f'Hi {notice.customer_name},',
        '',
        f'Your appointment with {notice.client_name} is confirmed for '
        f'{notice.date_label} at {notice.time_label} ({notice.duration_minutes} minutes).',
    ]
    if notice.cancel_url:
        lines += ['', f'Need to cancel? {notice.cancel_url}']
    return subject, '\n'.join(lines)


def reminder_message(notice: AppointmentNotice) -> tuple[str, str]:
    subject = f'Reminder: Appointment Tomorrow with {notice.client_name}'
    lines = [
        f'Hi {notice.customer_name},',
        '',
        f'This is a reminder of your appointment with {notice.client_name} on '
        f'{notice.date_label} at {notice.time_label}.',
    ]
    if notice.cancel_url:
        lines += ['', f'Can no longer make it? {notice.cancel_url}']
    return subject, '\n'.join(lines)


def cancellation_message(notice: AppointmentNotice) -> tuple[str, str]:
    subject = f'Appointment Cancelled - {notice.client_name}'
    body = '\n'.join([
        f'Hi {notice.customer_name},',
        '',
        f'Your appointment with {notice.client_name} on {notice.date_label} at '
        f'{notice.time_label} has been cancelled.',
    ])
    return subject, body


class LoggingNotifier:
    """Used when no SMTP server is configured."""

    async def send_confirmation(self, notice: AppointmentNotice) -> bool:
        return self._log('confirmation', confirmation_message(notice), notice)

    async def send_reminder(self, notice: AppointmentNotice) -> bool:
        return self._log('reminder', reminder_message(notice), notice)

    async def send_cancellation(self, notice: AppointmentNotice) -> bool:
        return self._log('cancellation', cancellation_message(notice), notice)

    @staticmethod
    def _log(kind: str, message: tuple[str, str], notice: AppointmentNotice) -> bool:
        subject, _ = message
        logger.info('Would send %s email for appointment %s to %s: %s',
                    kind, notice.appointment_id, notice.customer_email, subject)
        return True


class SmtpNotifier:
    def __init__(self, smtp: SmtpSettings, timeout: float = 10.0) -> None:
        self._smtp = smtp
        self._timeout = timeout

    async def send_confirmation(self, notice: AppointmentNotice) -> bool:
        return await self._send(notice.customer_email, *confirmation_message(notice))

    async def send_reminder(self, notice: AppointmentNotice) -> bool:
        return await self._send(notice.customer_email, *reminder_message(notice))

    async def send_cancellation(self, notice: AppointmentNotice) -> bool:
        return await self._send(notice.customer_email, *cancellation_message(notice))

    async def _send(self, to: str, subject: str, body: str) -> bool:
        try:
            await asyncio.to_thread(self._deliver, to, subject, body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning('SMTP delivery to %s failed: %s', to, exc)
            return False
        return True

    def _deliver(self, to: str, subject: str, body: str) -> None:
        message = MIMEText(body, 'plain', 'utf-8')
        message['Subject'] = subject
        message['From'] = self._smtp.sender
        message['To'] = to

        with smtplib.SMTP(self._smtp.host, self._smtp.port, timeout=self._timeout) as server:
            if self._smtp.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self._smtp.user:
                server.login(self._smtp.user, self._smtp.password)
            server.sendmail(self._smtp.sender, [to], message.as_string())


def build_notifier(smtp: SmtpSettings) -> Notifier:
    if smtp.enabled:
        return SmtpNotifier(smtp)
    return LoggingNotifier()


class NotificationDispatcher:
    """Runs notifier calls in the background so callers never wait on delivery."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, send: Callable[[AppointmentNotice], Awaitable[bool]], notice: AppointmentNotice) -> None:
        task = asyncio.create_task(self._run(send, notice))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def confirmation(self, notice: AppointmentNotice) -> None:
        self.dispatch(self.notifier.send_confirmation, notice)

    def cancellation(self, notice: AppointmentNotice) -> None:
        self.dispatch(self.notifier.send_cancellation, notice)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    async def _run(send: Callable[[AppointmentNotice], Awaitable[bool]], notice: AppointmentNotice) -> None:
        try:
            delivered = await send(notice)
        except Exception:
            logger.exception('Notification for appointment %s raised', notice.appointment_id)
            return
        if not delivered:
            logger.warning('Notification for appointment %s was not delivered', notice.appointment_id)
