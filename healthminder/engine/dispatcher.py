"""Dispatcher - the heartbeat that surfaces due reminders.

Delivery is someone else's job: the heartbeat back-fills missed
occurrences, classifies what is due and hands the partitions to a
notifier callable.
"""

import logging
from datetime import timedelta
from typing import Awaitable, Callable

from healthminder.db.models import DueReminders, ReminderFilter
from healthminder.service import ReminderService
from healthminder.utils.error_handler import ConflictError, ReminderNotFoundError, log_exception

logger = logging.getLogger(__name__)

Notifier = Callable[[DueReminders], Awaitable[None]]


async def sweep_overdue(service: ReminderService, grace: timedelta, limit: int = 100) -> int:
    """Back-fill missed occurrences on every overdue active reminder.

    Returns:
        Number of missed records written
    """
    cutoff = service.clock.now() - grace
    overdue = await service.repo.query_reminders(
        ReminderFilter(is_active=True, next_to=cutoff)
    )

    written = 0
    for reminder in overdue:
        try:
            records = await service.sweep_missed(reminder.id, grace, limit)  # type: ignore[arg-type]
            written += len(records)
        except ConflictError as e:
            # Someone resolved it meanwhile; the next heartbeat sees fresh state
            logger.info(f"Skipping back-fill: {e}")
        except ReminderNotFoundError:
            logger.info(f"Reminder {reminder.id} deleted during back-fill")
        except Exception as e:
            log_exception(e, f"back-filling reminder {reminder.id}")
            continue

    return written


async def heartbeat(
    service: ReminderService,
    notifier: Notifier,
    grace: timedelta,
    limit: int = 100,
) -> DueReminders | None:
    """Heartbeat job that surfaces due reminders.

    This runs every HEARTBEAT_INTERVAL seconds and:
    1. Records occurrences overdue beyond the grace period as missed
    2. Runs the due query over all active reminders
    3. Passes the partitions to the notifier if anything is current
    """
    try:
        missed = await sweep_overdue(service, grace, limit)
        if missed:
            logger.info(f"Heartbeat: back-filled {missed} missed occurrence(s)")

        due = await service.query_due()
        if not due.current:
            return due

        logger.info(
            f"Heartbeat: {len(due.current)} current, {len(due.past)} past, "
            f"{len(due.upcoming)} upcoming"
        )

        try:
            await notifier(due)
        except Exception as e:
            # Nothing was mutated; the next heartbeat will offer them again
            log_exception(e, "notifying due reminders")

        return due

    except Exception as e:
        log_exception(e, "running heartbeat")
        return None


async def startup_recovery(service: ReminderService, grace: timedelta, limit: int = 100) -> None:
    """Recovery on startup: catch up on occurrences missed while down."""
    try:
        missed = await sweep_overdue(service, grace, limit)
        if missed:
            logger.info(f"Startup recovery: back-filled {missed} missed occurrence(s)")
        logger.info("Startup recovery complete")

    except Exception as e:
        log_exception(e, "running startup recovery")
