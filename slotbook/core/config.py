import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


DEFAULT_JWT_SECRET = "change-me"


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class SmtpSettings:
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    sender: str = "noreply@example.com"
    use_tls: bool = True

    @property
    def enabled(self) -> bool:
        return bool(self.host)


@dataclass(frozen=True)
class Settings:
    app_env: str = "development"
    database_url: str = "sqlite+aiosqlite:///./slotbook.db"
    jwt_secret_key: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 60
    cron_secret: str = ""
    public_app_url: str = "http://localhost:3000"
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    log_level: str = "INFO"
    booking_max_attempts: int = 3
    reminder_window_start_hours: int = 23
    reminder_window_end_hours: int = 25
    smtp: SmtpSettings = field(default_factory=SmtpSettings)

    def cancel_url(self, booking_slug: str, appointment_id: str, token: str) -> str:
        base = self.public_app_url.rstrip("/")
        return f"{base}/book/{booking_slug}?cancel={appointment_id}&token={token}"


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build a Settings object from the process environment (and .env)."""
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)

    smtp = SmtpSettings(
        host=environ.get("SMTP_HOST", ""),
        port=_get_int(environ.get("SMTP_PORT"), 587),
        user=environ.get("SMTP_USER", ""),
        password=environ.get("SMTP_PASSWORD", ""),
        sender=environ.get("SMTP_FROM", "noreply@example.com"),
        use_tls=_get_bool(environ.get("SMTP_USE_TLS"), default=True),
    )

    return Settings(
        app_env=environ.get("APP_ENV", "development"),
        database_url=environ.get("DATABASE_URL", "sqlite+aiosqlite:///./slotbook.db"),
        jwt_secret_key=environ.get("JWT_SECRET_KEY", DEFAULT_JWT_SECRET),
        jwt_algorithm=environ.get("JWT_ALGORITHM", "HS256"),
        jwt_expires_minutes=_get_int(environ.get("JWT_EXPIRES_MINUTES"), 60),
        cron_secret=environ.get("CRON_SECRET", ""),
        public_app_url=environ.get("PUBLIC_APP_URL", "http://localhost:3000"),
        cors_origins=_get_list(environ.get("CORS_ORIGINS"), ("http://localhost:3000",)),
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        booking_max_attempts=max(1, _get_int(environ.get("BOOKING_MAX_ATTEMPTS"), 3)),
        reminder_window_start_hours=_get_int(environ.get("REMINDER_WINDOW_START_HOURS"), 23),
        reminder_window_end_hours=_get_int(environ.get("REMINDER_WINDOW_END_HOURS"), 25),
        smtp=smtp,
    )


def validate_runtime_config(settings: Settings) -> None:
    if settings.app_env.lower() == "production" and settings.jwt_secret_key == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if settings.reminder_window_end_hours <= settings.reminder_window_start_hours:
        raise RuntimeError("REMINDER_WINDOW_END_HOURS must be greater than REMINDER_WINDOW_START_HOURS.")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
