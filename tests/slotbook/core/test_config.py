import pytest

from slotbook.core.config import DEFAULT_JWT_SECRET, Settings, load_settings, validate_runtime_config
from slotbook.core.errors import BookingError, ErrorCode, internal_error, not_found


def test_load_settings_uses_defaults_for_empty_environment() -> None:
    settings = load_settings({})

    assert settings.database_url == 'sqlite+aiosqlite:///./slotbook.db'
    assert settings.booking_max_attempts == 3
    assert settings.reminder_window_start_hours == 23
    assert settings.reminder_window_end_hours == 25
    assert settings.smtp.enabled is False


def test_load_settings_reads_environment_values() -> None:
    settings = load_settings({
        'APP_ENV': 'production',
        'JWT_SECRET_KEY': 'real-secret',
        'CORS_ORIGINS': 'https://a.example.com, https://b.example.com,',
        'LOG_LEVEL': 'debug',
        'BOOKING_MAX_ATTEMPTS': '0',
        'SMTP_HOST': 'smtp.example.com',
        'SMTP_PORT': '2525',
        'SMTP_USE_TLS': 'false',
        'PUBLIC_APP_URL': 'https://book.example.com/',
    })

    assert settings.cors_origins == ('https://a.example.com', 'https://b.example.com')
    assert settings.log_level == 'DEBUG'
    assert settings.booking_max_attempts == 1
    assert settings.smtp.enabled is True
    assert settings.smtp.port == 2525
    assert settings.smtp.use_tls is False
    assert settings.cancel_url('acme', 'a1', 'tok') == 'https://book.example.com/book/acme?cancel=a1&token=tok'


def test_validate_runtime_config_refuses_default_secret_in_production() -> None:
    with pytest.raises(RuntimeError):
        validate_runtime_config(Settings(app_env='production', jwt_secret_key=DEFAULT_JWT_SECRET))

    validate_runtime_config(Settings(app_env='production', jwt_secret_key='real-secret'))
    validate_runtime_config(Settings())


def test_validate_runtime_config_checks_reminder_window() -> None:
    with pytest.raises(RuntimeError):
        validate_runtime_config(Settings(reminder_window_start_hours=25, reminder_window_end_hours=23))


def test_booking_error_payload() -> None:
    error = BookingError(ErrorCode.SLOT_UNAVAILABLE, 'This time slot is no longer available.')

    assert error.status_code == 409
    assert error.to_payload() == {
        'error': {'code': 'SLOT_UNAVAILABLE', 'message': 'This time slot is no longer available.'}
    }


def test_error_helpers() -> None:
    assert not_found('Missing.').status_code == 404
    assert internal_error().to_payload()['error']['code'] == 'INTERNAL_ERROR'
    assert BookingError(ErrorCode.VALIDATION_ERROR, 'Bad.', {'name': 'Required'}).to_payload()['error']['details'] == {
        'name': 'Required'
    }
