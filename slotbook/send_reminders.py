"""Run one reminder sweep and print the result.

Usage:
    python -m slotbook.send_reminders
"""
import asyncio
import sys

from slotbook.core.config import configure_logging, load_settings, validate_runtime_config
from slotbook.database import build_engine, build_sessionmaker, init_database
from slotbook.services.booking import utc_now
from slotbook.services.notifications import build_notifier
from slotbook.services.reminders import send_due_reminders


async def run() -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    validate_runtime_config(settings)

    engine = build_engine(settings)
    try:
        await init_database(engine)
        result = await send_due_reminders(
            build_sessionmaker(engine),
            build_notifier(settings.smtp),
            settings,
            utc_now(),
        )
    finally:
        await engine.dispose()

    print(result.message)
    for error in result.errors:
        print(error, file=sys.stderr)
    return 1 if result.errors else 0


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
