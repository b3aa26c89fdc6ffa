"""Main entry point for the healthminder reminder engine."""

import asyncio
import logging
import sys

from healthminder.config import Config
from healthminder.db.migrations import run_migrations
from healthminder.db.models import DueReminders
from healthminder.db.repository import Repository
from healthminder.display.formatters import format_due_summary
from healthminder.engine.dispatcher import heartbeat, startup_recovery
from healthminder.service import ReminderService

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
        stream=sys.stdout,
    )


async def log_notifier(due: DueReminders) -> None:
    """Default notifier: write the due summary to the log."""
    logger.info(format_due_summary(due))


async def run() -> None:
    """Initialize resources and run the heartbeat until cancelled."""
    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()
    service = ReminderService(
        repo, due_window=Config.due_window(), timezone=Config.DEFAULT_TIMEZONE
    )

    try:
        await startup_recovery(service, Config.missed_grace(), Config.MISSED_BACKFILL_LIMIT)
        logger.info(f"Heartbeat started (interval: {Config.HEARTBEAT_INTERVAL}s)")

        while True:
            await heartbeat(
                service,
                log_notifier,
                Config.missed_grace(),
                Config.MISSED_BACKFILL_LIMIT,
            )
            await asyncio.sleep(Config.HEARTBEAT_INTERVAL)
    finally:
        await repo.close()
        logger.info("healthminder shut down")


def main() -> None:
    """Start the engine."""
    configure_logging()

    # Validate configuration
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info("Starting healthminder...")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
