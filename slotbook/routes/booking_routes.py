import re
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.auth.dependencies import get_current_operator, get_session, get_settings, resolve_operator, security
from slotbook.core.config import Settings
from slotbook.core.errors import BookingError, ErrorCode
from slotbook.core.responses import ApiResponse, ErrorResponse
from slotbook.models.appointment import STATUS_CANCELLED, Appointment
from slotbook.models.user import User
from slotbook.scheduling.timezones import from_storage
from slotbook.services.booking import BookingRequest, BookingService

router = APIRouter(tags=['bookings'])

MAX_NOTES_LENGTH = 500
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{1,14}$')

ERROR_RESPONSES = {
    400: {'model': ErrorResponse},
    404: {'model': ErrorResponse},
    409: {'model': ErrorResponse},
}


class CreateBookingRequest(BaseModel):
    client_id: str
    start_time: datetime
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    notes: str | None = None

    @field_validator('client_id')
    @classmethod
    def validate_client_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Client ID is required.')
        return normalized

    @field_validator('customer_name')
    @classmethod
    def validate_customer_name(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 2:
            raise ValueError('Name must be at least 2 characters.')
        return normalized

    @field_validator('customer_email')
    @classmethod
    def validate_customer_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError('Invalid email address.')
        return normalized

    @field_validator('customer_phone')
    @classmethod
    def validate_customer_phone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = re.sub(r'[\s\-().]', '', value)
        if not normalized:
            return None
        if not PHONE_PATTERN.match(normalized):
            raise ValueError('Invalid phone number.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateBookingRequest(BaseModel):
    status: str | None = None
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower()


class SlotResponse(BaseModel):
    time: str
    display: str


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    client_id: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    notes: str | None = None
    status: str
    reminder_sent: bool

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'AppointmentResponse':
        return cls(
            id=appointment.id,
            client_id=appointment.client_id,
            start_time=from_storage(appointment.start_time),
            end_time=from_storage(appointment.end_time),
            duration_minutes=int((appointment.end_time - appointment.start_time).total_seconds() // 60),
            customer_name=appointment.customer_name,
            customer_email=appointment.customer_email,
            customer_phone=appointment.customer_phone,
            notes=appointment.notes,
            status=appointment.status,
            reminder_sent=bool(appointment.reminder_sent),
        )


class BookingCreatedResponse(AppointmentResponse):
    cancellation_token: str

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'BookingCreatedResponse':
        base = AppointmentResponse.from_appointment(appointment)
        return cls(**base.model_dump(), cancellation_token=appointment.cancellation_token)


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


@router.get('/availability', response_model=ApiResponse[list[SlotResponse]], responses=ERROR_RESPONSES)
async def list_available_slots(
    client_id: str = Query(...),
    target_date: date = Query(..., alias='date'),
    service: BookingService = Depends(get_booking_service),
):
    slots = await service.available_slots(client_id.strip(), target_date)
    return ApiResponse(data=[SlotResponse(**slot.as_public_dict()) for slot in slots])


@router.post(
    '',
    response_model=ApiResponse[BookingCreatedResponse],
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_booking(
    data: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    appointment = await service.create_booking(
        BookingRequest(
            client_id=data.client_id,
            start_time=data.start_time,
            customer_name=data.customer_name,
            customer_email=data.customer_email,
            customer_phone=data.customer_phone,
            notes=data.notes,
        )
    )
    return ApiResponse(data=BookingCreatedResponse.from_appointment(appointment))


@router.get('', response_model=ApiResponse[list[AppointmentResponse]])
async def list_bookings(
    client_id: str | None = Query(default=None),
    operator: User = Depends(get_current_operator),
    service: BookingService = Depends(get_booking_service),
):
    appointments = await service.list_for_agency(operator.agency_id, client_id)
    return ApiResponse(data=[AppointmentResponse.from_appointment(appointment) for appointment in appointments])


@router.get('/{appointment_id}', response_model=ApiResponse[AppointmentResponse], responses=ERROR_RESPONSES)
async def get_booking(
    appointment_id: str,
    token: str | None = Query(default=None),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    service: BookingService = Depends(get_booking_service),
):
    if token:
        appointment = await service.get_with_token(appointment_id, token)
    else:
        operator = await resolve_operator(credentials, session, settings)
        appointment = await service.get_for_agency(operator.agency_id, appointment_id)
    return ApiResponse(data=AppointmentResponse.from_appointment(appointment))


@router.patch('/{appointment_id}', response_model=ApiResponse[AppointmentResponse], responses=ERROR_RESPONSES)
async def update_booking(
    appointment_id: str,
    data: UpdateBookingRequest,
    token: str | None = Query(default=None),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    service: BookingService = Depends(get_booking_service),
):
    if token:
        if data.status != STATUS_CANCELLED:
            raise BookingError(ErrorCode.VALIDATION_ERROR, 'A cancellation link can only cancel the appointment.')
        appointment = await service.cancel_with_token(appointment_id, token)
        return ApiResponse(data=AppointmentResponse.from_appointment(appointment))

    operator = await resolve_operator(credentials, session, settings)
    changes = {}
    if 'notes' in data.model_fields_set:
        changes['notes'] = data.notes
    appointment = await service.update_as_operator(
        operator.agency_id,
        appointment_id,
        status=data.status,
        **changes,
    )
    return ApiResponse(data=AppointmentResponse.from_appointment(appointment))
