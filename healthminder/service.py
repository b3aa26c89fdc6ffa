"""Reminder service: the operations exposed to application layers.

Every mutation is load -> engine transition -> conditional save. A
ConflictError from the repository is passed to the caller, who reloads
and retries; the service never retries on its own, so a completion can't
be applied twice. The one exception is a completion that raced a
deactivation: its record is still written to the inactive reminder.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, List, Protocol

from healthminder.db.models import (
    CompletionRecord,
    CompletionStatus,
    DueReminders,
    Priority,
    RecurrenceRule,
    Reminder,
    ReminderFilter,
    ReminderType,
)
from healthminder.db.repository import Repository
from healthminder.display.formatters import format_reminder, format_reminder_list
from healthminder.display.stats import format_stats_message, get_member_stats
from healthminder.engine import state as state_machine
from healthminder.engine.completion import (
    record_after_deactivation,
    record_completion,
    sweep_missed,
)
from healthminder.engine.due import partition_due, today_reminders, upcoming_reminders
from healthminder.utils.constants import DEFAULT_TIMEZONE
from healthminder.utils.error_handler import ConflictError, ReminderNotFoundError
from healthminder.utils.time_utils import SystemClock

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...


class ReminderService:
    """Reminder operations over a repository and a clock."""

    def __init__(
        self,
        repo: Repository,
        clock: Clock | None = None,
        due_window: timedelta = timedelta(minutes=15),
        timezone: str = DEFAULT_TIMEZONE,
    ):
        self.repo = repo
        self.clock = clock or SystemClock()
        self.due_window = due_window
        self.timezone = timezone

    async def create_reminder(
        self,
        family_member_id: int,
        rule: RecurrenceRule,
        reminder_type: ReminderType = "custom",
        title: str = "Reminder",
        description: str | None = None,
        priority: Priority = "medium",
        metadata: dict[str, Any] | None = None,
    ) -> Reminder:
        """Create a reminder and schedule its first occurrence."""
        reminder = state_machine.create_reminder(
            family_member_id=family_member_id,
            reminder_type=reminder_type,
            title=title,
            rule=rule,
            description=description,
            priority=priority,
            metadata=metadata,
            now=self.clock.now(),
        )
        reminder = await self.repo.create_reminder(reminder)

        logger.info(
            f"Reminder {reminder.id} created ({rule.frequency}), "
            f"status {state_machine.get_status(reminder).value}"
        )
        return reminder

    async def get_reminder(self, reminder_id: int) -> Reminder:
        return await self.repo.load_reminder(reminder_id)

    async def list_reminders(
        self,
        family_member_id: int,
        reminder_type: ReminderType | None = None,
        is_active: bool | None = None,
    ) -> List[Reminder]:
        return await self.repo.query_reminders(
            ReminderFilter(
                family_member_id=family_member_id,
                reminder_type=reminder_type,
                is_active=is_active,
            )
        )

    async def update_rule(self, reminder_id: int, rule: RecurrenceRule) -> Reminder:
        """Replace a reminder's rule and reschedule it."""
        reminder = await self.repo.load_reminder(reminder_id)
        expected_version = reminder.version

        status = state_machine.edit_rule(reminder, rule, self.clock.now())
        await self.repo.save_reminder(reminder, expected_version)

        logger.info(f"Reminder {reminder_id} rule updated, status {status.value}")
        return reminder

    async def set_active(self, reminder_id: int, active: bool) -> Reminder:
        """Activate or deactivate a reminder."""
        reminder = await self.repo.load_reminder(reminder_id)
        expected_version = reminder.version

        status = state_machine.set_active(reminder, active, self.clock.now())
        await self.repo.save_reminder(reminder, expected_version)

        logger.info(f"Reminder {reminder_id} set active={active}, status {status.value}")
        return reminder

    async def complete(
        self,
        reminder_id: int,
        status: CompletionStatus = "completed",
        notes: str | None = None,
        at: datetime | None = None,
        expected_next: datetime | None = None,
    ) -> CompletionRecord:
        """Resolve a reminder's pending occurrence.

        A reminder deactivated after it was loaded here still gets the
        record; it stays inactive.

        Raises:
            NotDueError: if the reminder has nothing pending
            ConflictError: if another writer resolved it first
            ReminderNotFoundError: if the reminder does not exist
        """
        reminder = await self.repo.load_reminder(reminder_id)
        expected_version = reminder.version

        now = self.clock.now()
        record = record_completion(
            reminder,
            status=status,
            notes=notes,
            at=at,
            now=now,
            expected_next=expected_next,
        )
        try:
            await self.repo.save_reminder(reminder, expected_version)
        except ConflictError:
            # A deactivation in between still leaves this occurrence to record
            reminder = await self.repo.load_reminder(reminder_id)
            if reminder.is_active:
                raise
            record_after_deactivation(reminder, record, now)
            await self.repo.save_reminder(reminder, reminder.version)

        logger.info(
            f"Reminder {reminder_id} marked {status} for {record.scheduled_time.isoformat()}, "
            f"adherence {reminder.stats.adherence_rate}%"
        )
        return record

    async def sweep_missed(
        self, reminder_id: int, grace: timedelta, limit: int = 100
    ) -> List[CompletionRecord]:
        """Back-fill a reminder's overdue occurrences as missed."""
        reminder = await self.repo.load_reminder(reminder_id)
        expected_version = reminder.version

        last_scheduled = reminder.last_scheduled
        records = sweep_missed(reminder, self.clock.now(), grace, limit)
        if reminder.last_scheduled != last_scheduled:
            await self.repo.save_reminder(reminder, expected_version)
        return records

    async def delete_reminder(self, reminder_id: int) -> None:
        """Delete a reminder with its history."""
        if not await self.repo.delete_reminder(reminder_id):
            raise ReminderNotFoundError(reminder_id)

    async def query_due(
        self,
        family_member_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        window: timedelta | None = None,
    ) -> DueReminders:
        """Classify active reminders due between start and end around now."""
        reminders = await self.repo.query_reminders(
            ReminderFilter(
                family_member_id=family_member_id,
                is_active=True,
                next_from=start,
                next_to=end,
            )
        )
        if window is None:
            window = self.due_window
        return partition_due(reminders, self.clock.now(), window)

    async def today_reminders(self, family_member_id: int, tz: str | None = None) -> List[Reminder]:
        reminders = await self.list_reminders(family_member_id, is_active=True)
        return today_reminders(reminders, self.clock.now(), tz or self.timezone)

    async def upcoming_reminders(self, family_member_id: int, days: int = 7) -> List[Reminder]:
        reminders = await self.list_reminders(family_member_id, is_active=True)
        return upcoming_reminders(reminders, self.clock.now(), days)

    async def member_stats(self, family_member_id: int) -> dict:
        """Adherence and scheduling statistics over all of a member's reminders."""
        reminders = await self.list_reminders(family_member_id)
        return get_member_stats(reminders, self.clock.now())

    async def member_summary(self, family_member_id: int) -> str:
        """Readable statistics followed by the member's reminder list."""
        reminders = await self.list_reminders(family_member_id)
        now = self.clock.now()
        stats = format_stats_message(get_member_stats(reminders, now))
        return f"{stats}\n\n{format_reminder_list(reminders, now)}"

    async def describe_reminder(self, reminder_id: int) -> str:
        reminder = await self.repo.load_reminder(reminder_id)
        return format_reminder(reminder, self.clock.now())
