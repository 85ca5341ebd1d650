from typing import Any

from sqlalchemy import Connection, inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from slotbook.core.config import Settings


Base = declarative_base()


def build_engine(settings: Settings, **engine_options: Any) -> AsyncEngine:
    return create_async_engine(settings.database_url, **engine_options)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


def ensure_schema(connection: Connection) -> None:
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())

    if 'clients' in table_names:
        existing_columns = {column['name'] for column in inspector.get_columns('clients')}
        if 'booking_version' not in existing_columns:
            connection.execute(
                text('ALTER TABLE clients ADD COLUMN booking_version INTEGER NOT NULL DEFAULT 0')
            )

    if 'appointments' in table_names:
        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('reminder_sent', 'ALTER TABLE appointments ADD COLUMN reminder_sent BOOLEAN NOT NULL DEFAULT FALSE'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
        ]
        for column_name, statement in migration_steps:
            if column_name not in existing_columns:
                connection.execute(text(statement))
        connection.execute(
            text('CREATE INDEX IF NOT EXISTS idx_appointments_client_start ON appointments(client_id, start_time)')
        )
        connection.execute(
            text(
                'CREATE INDEX IF NOT EXISTS idx_appointments_client_status_start '
                'ON appointments(client_id, status, start_time)'
            )
        )


async def init_database(engine: AsyncEngine) -> None:
    """Create missing tables, then patch columns and indexes added after first deploy."""
    # Registers every mapped table on Base.metadata.
    from slotbook.models import agency, appointment, availability, client, client_settings, user  # noqa: F401

    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
        await connection.run_sync(ensure_schema)
