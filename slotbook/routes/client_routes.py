import re
from datetime import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.auth.dependencies import get_current_operator, get_session, require_agency_owner, require_client_admin
from slotbook.core.responses import ApiResponse
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
from slotbook.models.user import User
from slotbook.services import clients, repository

router = APIRouter(tags=['clients'])

SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
HHMM_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def _validate_timezone_name(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError('Unknown timezone.') from exc
    return value


class CreateClientRequest(BaseModel):
    name: str
    booking_slug: str
    timezone: str = DEFAULT_TIMEZONE
    email: str | None = None
    phone: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('booking_slug')
    @classmethod
    def validate_booking_slug(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not SLUG_PATTERN.match(normalized):
            raise ValueError('Booking slug may only contain lowercase letters, digits and hyphens.')
        return normalized

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return _validate_timezone_name(value)


class UpdateClientRequest(BaseModel):
    """Partial update; only fields present in the body are written."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    timezone: str | None = None
    is_active: bool | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str:
        normalized = (value or '').strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str | None) -> str:
        if value is None:
            raise ValueError('Timezone is required.')
        return _validate_timezone_name(value)

    @field_validator('is_active')
    @classmethod
    def validate_is_active(cls, value: bool | None) -> bool:
        if value is None:
            raise ValueError('is_active must be true or false.')
        return value

    def changes(self) -> dict:
        return {field_name: getattr(self, field_name) for field_name in self.model_fields_set}


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    agency_id: str
    name: str
    booking_slug: str
    email: str | None = None
    phone: str | None = None
    timezone: str
    is_active: bool


class ClientSettingsRequest(BaseModel):
    appointment_duration_minutes: int = Field(default=DEFAULT_APPOINTMENT_DURATION_MINUTES, ge=15, le=480)
    buffer_time_minutes: int = Field(default=DEFAULT_BUFFER_TIME_MINUTES, ge=0, le=120)
    max_bookings_per_day: int = Field(default=DEFAULT_MAX_BOOKINGS_PER_DAY, ge=1, le=100)
    min_notice_hours: int = Field(default=DEFAULT_MIN_NOTICE_HOURS, ge=0, le=168)
    max_advance_days: int = Field(default=DEFAULT_MAX_ADVANCE_DAYS, ge=1, le=365)


class ClientSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    client_id: str
    appointment_duration_minutes: int
    buffer_time_minutes: int
    max_bookings_per_day: int
    min_notice_hours: int
    max_advance_days: int


class AvailabilityRuleRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    is_available: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_hhmm(cls, value: str) -> str:
        normalized = value.strip()
        if not HHMM_PATTERN.match(normalized):
            raise ValueError('Time must use the HH:MM format.')
        return normalized

    def as_rule(self) -> tuple[int, time, time, bool]:
        return (
            self.day_of_week,
            time.fromisoformat(self.start_time),
            time.fromisoformat(self.end_time),
            self.is_available,
        )


class AvailabilityRuleResponse(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str
    is_available: bool

    @classmethod
    def from_rule(cls, rule: AvailabilityRule) -> 'AvailabilityRuleResponse':
        return cls(
            day_of_week=rule.day_of_week,
            start_time=rule.start_time.strftime('%H:%M'),
            end_time=rule.end_time.strftime('%H:%M'),
            is_available=rule.is_available,
        )


def _settings_response(client_id: str, client_settings: ClientSettings) -> ClientSettingsResponse:
    return ClientSettingsResponse(
        client_id=client_id,
        **{field_name: getattr(client_settings, field_name) for field_name in clients.SETTINGS_FIELDS},
    )


@router.get('', response_model=ApiResponse[list[ClientResponse]])
async def list_clients(
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    agency_clients = await clients.list_agency_clients(session, operator.agency_id)
    return ApiResponse(data=[ClientResponse.model_validate(client) for client in agency_clients])


@router.post('', response_model=ApiResponse[ClientResponse], status_code=status.HTTP_201_CREATED)
async def create_client(
    data: CreateClientRequest,
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    require_agency_owner(operator)
    client = await clients.create_client(
        session,
        operator.agency_id,
        name=data.name,
        booking_slug=data.booking_slug,
        timezone=data.timezone,
        email=data.email,
        phone=data.phone,
    )
    return ApiResponse(data=ClientResponse.model_validate(client))


@router.get('/{client_id}', response_model=ApiResponse[ClientResponse])
async def get_client(
    client_id: str,
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    client: Client = await clients.get_agency_client(session, operator.agency_id, client_id)
    return ApiResponse(data=ClientResponse.model_validate(client))


@router.patch('/{client_id}', response_model=ApiResponse[ClientResponse])
async def update_client(
    client_id: str,
    data: UpdateClientRequest,
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    require_agency_owner(operator)
    client = await clients.get_agency_client(session, operator.agency_id, client_id)
    client = await clients.update_client(session, client, data.changes())
    return ApiResponse(data=ClientResponse.model_validate(client))


@router.delete('/{client_id}', response_model=ApiResponse[dict[str, bool]])
async def delete_client(
    client_id: str,
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    require_agency_owner(operator)
    client = await clients.get_agency_client(session, operator.agency_id, client_id)
    await clients.delete_client(session, client)
    return ApiResponse(data={'success': True})


@router.get('/{client_id}/settings', response_model=ApiResponse[ClientSettingsResponse])
async def get_client_settings(
    client_id: str,
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    await clients.get_agency_client(session, operator.agency_id, client_id)
    client_settings = await repository.get_client_settings(session, client_id) or clients.default_settings(client_id)
    return ApiResponse(data=_settings_response(client_id, client_settings))


@router.put('/{client_id}/settings', response_model=ApiResponse[ClientSettingsResponse])
async def update_client_settings(
    client_id: str,
    data: ClientSettingsRequest,
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    require_client_admin(operator)
    await clients.get_agency_client(session, operator.agency_id, client_id)
    client_settings = await clients.update_settings(session, client_id, data.model_dump())
    return ApiResponse(data=_settings_response(client_id, client_settings))


@router.get('/{client_id}/availability', response_model=ApiResponse[list[AvailabilityRuleResponse]])
async def get_client_availability(
    client_id: str,
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    await clients.get_agency_client(session, operator.agency_id, client_id)
    rules = await repository.list_rules(session, client_id)
    return ApiResponse(data=[AvailabilityRuleResponse.from_rule(rule) for rule in rules])


@router.put('/{client_id}/availability', response_model=ApiResponse[list[AvailabilityRuleResponse]])
async def replace_client_availability(
    client_id: str,
    data: list[AvailabilityRuleRequest],
    operator: User = Depends(get_current_operator),
    session: AsyncSession = Depends(get_session),
):
    require_client_admin(operator)
    await clients.get_agency_client(session, operator.agency_id, client_id)
    rules = await clients.replace_rules(session, client_id, [rule.as_rule() for rule in data])
    return ApiResponse(data=[AvailabilityRuleResponse.from_rule(rule) for rule in rules])
