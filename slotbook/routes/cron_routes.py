import hmac
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials

from slotbook.auth.dependencies import get_settings, security
from slotbook.core.config import Settings
from slotbook.core.errors import BookingError, ErrorCode
from slotbook.services.reminders import send_due_reminders

router = APIRouter(tags=['cron'])

logger = logging.getLogger(__name__)


def verify_cron_secret(credentials: HTTPAuthorizationCredentials | None, settings: Settings) -> None:
    """Open when CRON_SECRET is unset; otherwise the bearer token must match it."""
    if not settings.cron_secret:
        return
    supplied = credentials.credentials if credentials else ''
    if not hmac.compare_digest(supplied, settings.cron_secret):
        raise BookingError(ErrorCode.UNAUTHORIZED, 'Unauthorized')


@router.get('/send-reminders')
async def send_reminders(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
):
    verify_cron_secret(credentials, settings)

    state = request.app.state
    result = await send_due_reminders(state.sessionmaker, state.dispatcher.notifier, settings, state.clock())
    if result.errors:
        logger.warning('Reminder sweep finished with %s errors', len(result.errors))

    data = {'message': result.message, 'sent': result.sent, 'total': result.total}
    if result.errors:
        data['errors'] = result.errors
    return {'data': data}
