import asyncio
from dataclasses import replace
from datetime import timedelta

import jwt
import pytest
from fastapi.security import HTTPAuthorizationCredentials
from starlette.requests import Request

from conftest import FIXED_NOW, insert_appointment
from slotbook.auth.dependencies import require_agency_owner, resolve_operator
from slotbook.auth.jwt_handler import create_access_token, decode_access_token
from slotbook.core.errors import BookingError, ErrorCode
from slotbook.main import create_app
from slotbook.models.user import User
from slotbook.routes.auth_routes import me
from slotbook.routes.cron_routes import send_reminders, verify_cron_secret


def credentials_for(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trip(settings) -> None:
    token = create_access_token('owner@agency.test', settings)

    assert decode_access_token(token, settings)['sub'] == 'owner@agency.test'


def test_expired_access_token_is_rejected(settings) -> None:
    token = create_access_token('owner@agency.test', settings, expires_minutes=-5)

    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token, settings)


@pytest.mark.parametrize(
    'credentials',
    [None, credentials_for('garbage'), credentials_for(jwt.encode({'sub': 'x'}, 'other-secret', algorithm='HS256'))],
)
def test_resolve_operator_rejects_bad_credentials(sessionmaker, settings, seeded, credentials) -> None:
    async def resolve():
        async with sessionmaker() as session:
            await resolve_operator(credentials, session, settings)

    with pytest.raises(BookingError) as exception_info:
        asyncio.run(resolve())

    assert exception_info.value.code == ErrorCode.UNAUTHORIZED
    assert exception_info.value.status_code == 401


def test_resolve_operator_rejects_unknown_user(sessionmaker, settings, seeded) -> None:
    async def resolve():
        async with sessionmaker() as session:
            await resolve_operator(credentials_for(create_access_token('nobody@agency.test', settings)), session, settings)

    with pytest.raises(BookingError) as exception_info:
        asyncio.run(resolve())

    assert exception_info.value.message == 'User not found'


def test_me_returns_operator_profile(sessionmaker, settings, seeded) -> None:
    async def call():
        async with sessionmaker() as session:
            token = create_access_token(' Owner@Agency.test ', settings)
            operator = await resolve_operator(credentials_for(token), session, settings)
            return await me(current_user=operator)

    response = asyncio.run(call())

    assert response == {
        'data': {'email': 'owner@agency.test', 'role': 'agency_owner', 'agency_id': seeded.agency_id}
    }


def test_require_agency_owner() -> None:
    require_agency_owner(User(email='owner@agency.test', role='agency_owner', agency_id='a'))

    with pytest.raises(BookingError) as exception_info:
        require_agency_owner(User(email='staff@agency.test', role='staff', agency_id='a'))

    assert exception_info.value.code == ErrorCode.FORBIDDEN


def test_verify_cron_secret(settings) -> None:
    verify_cron_secret(credentials_for('cron-secret'), settings)

    for credentials in (None, credentials_for('wrong')):
        with pytest.raises(BookingError) as exception_info:
            verify_cron_secret(credentials, settings)
        assert exception_info.value.code == ErrorCode.UNAUTHORIZED


def test_verify_cron_secret_is_open_without_configured_secret(settings) -> None:
    verify_cron_secret(None, replace(settings, cron_secret=''))


def test_send_reminders_route_runs_sweep(engine, settings, notifier, clock, seeded, sessionmaker) -> None:
    due = asyncio.run(insert_appointment(sessionmaker, seeded.client_id, FIXED_NOW + timedelta(hours=24)))
    app = create_app(settings, engine=engine, notifier=notifier, clock=clock)
    request = Request({'type': 'http', 'app': app, 'headers': []})

    response = asyncio.run(send_reminders(request, credentials=credentials_for('cron-secret'), settings=settings))

    assert response == {'data': {'message': 'Sent 1 reminders', 'sent': 1, 'total': 1}}
    assert [item.appointment_id for item in notifier.reminders] == [due.id]
