import asyncio
from datetime import date, datetime, timezone

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError

from slotbook.auth.dependencies import resolve_operator
from slotbook.auth.jwt_handler import create_access_token
from slotbook.core.errors import BookingError, ErrorCode
from slotbook.routes.booking_routes import (
    CreateBookingRequest,
    UpdateBookingRequest,
    create_booking,
    get_booking,
    list_available_slots,
    list_bookings,
    update_booking,
)
from slotbook.services.booking import BookingService

UTC = timezone.utc


def bearer(email: str, settings) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=create_access_token(email, settings))


def booking_request(client_id: str, **overrides) -> CreateBookingRequest:
    values = {
        'client_id': client_id,
        'start_time': datetime(2026, 1, 7, 9, 0, tzinfo=UTC),
        'customer_name': 'Jane Doe',
        'customer_email': 'jane@example.com',
    }
    values.update(overrides)
    return CreateBookingRequest(**values)


def test_create_booking_request_normalizes_fields() -> None:
    request = booking_request(
        ' client-1 ',
        customer_name='  Jane Doe ',
        customer_email=' JANE@Example.COM ',
        customer_phone='+1 (555) 010-9999',
        notes='   ',
    )

    assert request.client_id == 'client-1'
    assert request.customer_name == 'Jane Doe'
    assert request.customer_email == 'jane@example.com'
    assert request.customer_phone == '+15550109999'
    assert request.notes is None


@pytest.mark.parametrize(
    'overrides',
    [
        {'customer_name': 'J'},
        {'customer_email': 'not-an-email'},
        {'customer_phone': '0123'},
        {'notes': 'x' * 501},
        {'client_id': '   '},
    ],
)
def test_create_booking_request_rejects_invalid_fields(overrides) -> None:
    with pytest.raises(ValidationError):
        booking_request('client-1', **overrides)


def test_update_booking_request_tracks_explicit_notes() -> None:
    assert 'notes' not in UpdateBookingRequest(status=' Completed ').model_fields_set
    assert UpdateBookingRequest(status=' Completed ').status == 'completed'
    assert 'notes' in UpdateBookingRequest(notes=None).model_fields_set


def test_list_available_slots_returns_time_and_display(service: BookingService, seeded) -> None:
    response = asyncio.run(list_available_slots(client_id=seeded.booking_slug, target_date=date(2026, 1, 7), service=service))

    assert [slot.model_dump() for slot in response.data][:2] == [
        {'time': '09:00', 'display': '9:00 AM'},
        {'time': '09:45', 'display': '9:45 AM'},
    ]


def test_list_available_slots_unknown_client_is_empty(service: BookingService, seeded) -> None:
    response = asyncio.run(list_available_slots(client_id='missing', target_date=date(2026, 1, 7), service=service))

    assert response.data == []


def test_create_booking_returns_appointment_with_token(service: BookingService, seeded) -> None:
    response = asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service))

    assert response.data.status == 'confirmed'
    assert response.data.start_time == datetime(2026, 1, 7, 9, 0, tzinfo=UTC)
    assert response.data.end_time == datetime(2026, 1, 7, 9, 30, tzinfo=UTC)
    assert response.data.duration_minutes == 30
    assert response.data.cancellation_token


def test_create_booking_propagates_conflict(service: BookingService, seeded) -> None:
    asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service))

    with pytest.raises(BookingError) as exception_info:
        asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service))

    assert exception_info.value.code == ErrorCode.SLOT_UNAVAILABLE
    assert exception_info.value.status_code == 409


def test_token_holder_can_view_and_cancel(service: BookingService, seeded, sessionmaker, settings) -> None:
    created = asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service)).data

    async def view_and_cancel():
        async with sessionmaker() as session:
            viewed = await get_booking(
                created.id, token=created.cancellation_token, credentials=None,
                session=session, settings=settings, service=service,
            )
            cancelled = await update_booking(
                created.id, UpdateBookingRequest(status='cancelled'), token=created.cancellation_token,
                credentials=None, session=session, settings=settings, service=service,
            )
        return viewed, cancelled

    viewed, cancelled = asyncio.run(view_and_cancel())

    assert viewed.data.id == created.id
    assert not hasattr(viewed.data, 'cancellation_token')
    assert cancelled.data.status == 'cancelled'


def test_token_holder_can_only_cancel(service: BookingService, seeded, sessionmaker, settings) -> None:
    created = asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service)).data

    async def complete_with_token():
        async with sessionmaker() as session:
            await update_booking(
                created.id, UpdateBookingRequest(status='completed'), token=created.cancellation_token,
                credentials=None, session=session, settings=settings, service=service,
            )

    with pytest.raises(BookingError) as exception_info:
        asyncio.run(complete_with_token())

    assert exception_info.value.code == ErrorCode.VALIDATION_ERROR


def test_get_booking_without_token_requires_operator(service: BookingService, seeded, sessionmaker, settings) -> None:
    created = asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service)).data

    async def view_anonymously():
        async with sessionmaker() as session:
            await get_booking(
                created.id, token=None, credentials=None, session=session, settings=settings, service=service,
            )

    with pytest.raises(BookingError) as exception_info:
        asyncio.run(view_anonymously())

    assert exception_info.value.code == ErrorCode.UNAUTHORIZED


def test_operator_lists_and_updates_bookings(service: BookingService, seeded, sessionmaker, settings) -> None:
    created = asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service)).data
    credentials = bearer(seeded.staff_email, settings)

    async def operate():
        async with sessionmaker() as session:
            operator = await resolve_operator(credentials, session, settings)
            listed = await list_bookings(client_id=seeded.client_id, operator=operator, service=service)
            updated = await update_booking(
                created.id, UpdateBookingRequest(status='no_show', notes='Did not arrive'), token=None,
                credentials=credentials, session=session, settings=settings, service=service,
            )
        return listed, updated

    listed, updated = asyncio.run(operate())

    assert [item.id for item in listed.data] == [created.id]
    assert updated.data.status == 'no_show'
    assert updated.data.notes == 'Did not arrive'


def test_operator_cannot_touch_other_agency_booking(service: BookingService, seeded, sessionmaker, settings) -> None:
    created = asyncio.run(create_booking(data=booking_request(seeded.client_id), service=service)).data
    credentials = bearer('owner@elsewhere.test', settings)

    async def view():
        async with sessionmaker() as session:
            await get_booking(
                created.id, token=None, credentials=credentials, session=session, settings=settings, service=service,
            )

    with pytest.raises(BookingError) as exception_info:
        asyncio.run(view())

    assert exception_info.value.code == ErrorCode.NOT_FOUND
