"""Structured error codes shared by the booking engine and the HTTP layer."""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    UNAUTHORIZED = 'UNAUTHORIZED'
    FORBIDDEN = 'FORBIDDEN'
    NOT_FOUND = 'NOT_FOUND'
    SLOT_UNAVAILABLE = 'SLOT_UNAVAILABLE'
    MAX_BOOKINGS_REACHED = 'MAX_BOOKINGS_REACHED'
    BOOKING_IN_PAST = 'BOOKING_IN_PAST'
    INTERNAL_ERROR = 'INTERNAL_ERROR'


STATUS_CODES = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SLOT_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.MAX_BOOKINGS_REACHED: status.HTTP_409_CONFLICT,
    ErrorCode.BOOKING_IN_PAST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

GENERIC_INTERNAL_MESSAGE = 'An unexpected error occurred.'


class BookingError(Exception):
    """A rejection that is reported to the caller as a code plus message."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.code]

    def to_payload(self) -> dict[str, Any]:
        error: dict[str, Any] = {'code': self.code.value, 'message': self.message}
        if self.details:
            error['details'] = self.details
        return {'error': error}


def not_found(message: str) -> BookingError:
    return BookingError(ErrorCode.NOT_FOUND, message)


def internal_error() -> BookingError:
    return BookingError(ErrorCode.INTERNAL_ERROR, GENERIC_INTERNAL_MESSAGE)
