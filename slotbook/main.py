import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from slotbook.core.config import Settings, configure_logging, load_settings, validate_runtime_config
from slotbook.core.errors import BookingError, ErrorCode, internal_error
from slotbook.database import build_engine, build_sessionmaker, init_database
from slotbook.routes import auth_routes, booking_routes, client_routes, cron_routes
from slotbook.services.booking import BookingService, utc_now
from slotbook.services.conflict_sources import ConflictSource
from slotbook.services.notifications import NotificationDispatcher, Notifier, build_notifier

logger = logging.getLogger(__name__)


def validation_details(exc: RequestValidationError) -> dict[str, str]:
    details = {}
    for error in exc.errors():
        location = [str(part) for part in error.get('loc', ()) if part not in ('body', 'query', 'path')]
        message = str(error.get('msg', 'Invalid value'))
        details['.'.join(location) or 'request'] = message.removeprefix('Value error, ')
    return details


async def handle_booking_error(request: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = BookingError(ErrorCode.VALIDATION_ERROR, 'Invalid request.', validation_details(exc))
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error on %s %s', request.method, request.url.path)
    error = internal_error()
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    error = internal_error()
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


def create_app(
    settings: Settings | None = None,
    *,
    engine: AsyncEngine | None = None,
    notifier: Notifier | None = None,
    conflict_source: ConflictSource | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    settings = settings or load_settings()
    engine = engine or build_engine(settings)
    sessionmaker = build_sessionmaker(engine)
    dispatcher = NotificationDispatcher(notifier or build_notifier(settings.smtp))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        validate_runtime_config(settings)
        try:
            await init_database(engine)
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')
        yield
        await dispatcher.drain()
        await engine.dispose()

    app = FastAPI(title='Slotbook', lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = sessionmaker
    app.state.dispatcher = dispatcher
    app.state.clock = clock
    app.state.booking_service = BookingService(
        sessionmaker,
        settings,
        dispatcher,
        conflict_source=conflict_source,
        clock=clock,
    )

    app.add_exception_handler(BookingError, handle_booking_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.get('/')
    def root():
        return {'status': 'Slotbook API Running'}

    app.include_router(auth_routes.router, prefix='/auth')
    app.include_router(booking_routes.router, prefix='/bookings')
    app.include_router(client_routes.router, prefix='/clients')
    app.include_router(cron_routes.router, prefix='/cron')

    return app


app = create_app()
