"""Reminder state machine: creation, rule edits and activation toggles."""

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from healthminder.db.models import Priority, RecurrenceRule, Reminder, ReminderType
from healthminder.engine.recurrence import next_occurrence
from healthminder.utils.constants import (
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    PRIORITIES,
    REMINDER_TYPES,
)
from healthminder.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class ReminderStatus(str, Enum):
    """Scheduling state, derived from is_active and next_scheduled."""

    PENDING = "pending"
    EXHAUSTED = "exhausted"
    INACTIVE = "inactive"


def get_status(reminder: Reminder) -> ReminderStatus:
    """Derive the reminder's scheduling state."""
    if not reminder.is_active:
        return ReminderStatus.INACTIVE
    if reminder.next_scheduled is None:
        return ReminderStatus.EXHAUSTED
    return ReminderStatus.PENDING


def create_reminder(
    family_member_id: int,
    reminder_type: ReminderType,
    title: str,
    rule: RecurrenceRule,
    description: str | None = None,
    priority: Priority = "medium",
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Reminder:
    """Create an active reminder with its first occurrence scheduled.

    Raises:
        ValueError: if the descriptive fields are invalid
    """
    if now is None:
        now = utc_now()

    title = title.strip()
    if not title:
        raise ValueError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValueError(f"Title cannot be longer than {MAX_TITLE_LENGTH} characters")
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValueError(f"Description cannot be longer than {MAX_DESCRIPTION_LENGTH} characters")
    if reminder_type not in REMINDER_TYPES:
        raise ValueError(f"Unknown reminder type {reminder_type!r}")
    if priority not in PRIORITIES:
        raise ValueError(f"Unknown priority {priority!r}")

    reminder = Reminder(
        family_member_id=family_member_id,
        reminder_type=reminder_type,
        title=title,
        rule=rule,
        description=description,
        priority=priority,
        metadata=dict(metadata or {}),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    reminder.next_scheduled = next_occurrence(rule, None, now)
    return reminder


def edit_rule(reminder: Reminder, rule: RecurrenceRule, now: datetime | None = None) -> ReminderStatus:
    """Replace the rule and reschedule from the last resolved occurrence."""
    if now is None:
        now = utc_now()

    reminder.rule = rule
    reminder.updated_at = now
    if reminder.is_active:
        reminder.next_scheduled = next_occurrence(rule, reminder.last_scheduled, now)

    return get_status(reminder)


def deactivate(reminder: Reminder, now: datetime | None = None) -> ReminderStatus:
    """Stop scheduling. History and stats are kept."""
    if now is None:
        now = utc_now()

    reminder.is_active = False
    reminder.next_scheduled = None
    reminder.updated_at = now
    return ReminderStatus.INACTIVE


def reactivate(reminder: Reminder, now: datetime | None = None) -> ReminderStatus:
    """Resume scheduling from the last resolved occurrence."""
    if now is None:
        now = utc_now()

    reminder.is_active = True
    reminder.next_scheduled = next_occurrence(reminder.rule, reminder.last_scheduled, now)
    reminder.updated_at = now

    status = get_status(reminder)
    if status == ReminderStatus.EXHAUSTED:
        logger.info(f"Reminder {reminder.id} reactivated but has no further occurrences")
    return status


def set_active(reminder: Reminder, active: bool, now: datetime | None = None) -> ReminderStatus:
    """Toggle activation."""
    if active:
        return reactivate(reminder, now)
    return deactivate(reminder, now)
