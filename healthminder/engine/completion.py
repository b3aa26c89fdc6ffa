"""Completion recording and adherence statistics."""

import logging
from datetime import datetime, timedelta
from typing import Iterable

from healthminder.db.models import AdherenceStats, CompletionRecord, CompletionStatus, Reminder
from healthminder.engine.recurrence import next_occurrence
from healthminder.engine.state import ReminderStatus, get_status
from healthminder.utils.constants import COMPLETION_STATUSES
from healthminder.utils.error_handler import ConflictError, NotDueError
from healthminder.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


def adherence_rate(total_completed: int, total_scheduled: int) -> float:
    """Percentage of scheduled occurrences completed, to one decimal."""
    if total_scheduled <= 0:
        return 0.0
    return round(100 * total_completed / total_scheduled, 1)


def apply_to_stats(stats: AdherenceStats, status: CompletionStatus) -> None:
    """Count one resolved occurrence. O(1), no history scan."""
    stats.total_scheduled += 1

    if status == "completed":
        stats.total_completed += 1
    elif status == "skipped":
        stats.total_skipped += 1
    else:
        stats.total_missed += 1

    stats.adherence_rate = adherence_rate(stats.total_completed, stats.total_scheduled)


def recompute_stats(history: Iterable[CompletionRecord]) -> AdherenceStats:
    """Rebuild stats from a full history (for audits and repairs)."""
    stats = AdherenceStats()
    for record in history:
        apply_to_stats(stats, record.status)
    return stats


def record_completion(
    reminder: Reminder,
    status: CompletionStatus = "completed",
    notes: str | None = None,
    at: datetime | None = None,
    now: datetime | None = None,
    expected_next: datetime | None = None,
) -> CompletionRecord:
    """Resolve the pending occurrence and roll the schedule forward.

    Args:
        reminder: The reminder to update (mutated in place on success)
        status: completed, skipped or missed
        notes: Optional free text
        at: When the occurrence was completed, defaults to now
        now: Current time, defaults to utcnow()
        expected_next: The next_scheduled value the caller acted on; if
            given and stale, the call is rejected

    Returns:
        The appended completion record

    Raises:
        NotDueError: if the reminder is not pending
        ConflictError: if expected_next no longer matches
        ValueError: if status is unknown
    """
    if now is None:
        now = utc_now()
    if at is None:
        at = now

    if status not in COMPLETION_STATUSES:
        raise ValueError(f"Unknown completion status {status!r}")

    state = get_status(reminder)
    if state != ReminderStatus.PENDING:
        raise NotDueError(reminder.id, state.value)

    if expected_next is not None and expected_next != reminder.next_scheduled:
        raise ConflictError(reminder.id, "occurrence was already resolved")

    scheduled_time = reminder.next_scheduled
    record = CompletionRecord(
        scheduled_time=scheduled_time,  # type: ignore[arg-type]
        status=status,
        completed_time=at if status == "completed" else None,
        notes=notes,
    )

    reminder.completion_history.append(record)
    apply_to_stats(reminder.stats, status)

    reminder.last_scheduled = scheduled_time
    reminder.next_scheduled = next_occurrence(reminder.rule, scheduled_time, now)
    reminder.updated_at = now

    return record


def record_after_deactivation(
    reminder: Reminder, record: CompletionRecord, now: datetime | None = None
) -> CompletionRecord:
    """Apply a completion that was in flight when the reminder was deactivated.

    The record resolves an occurrence that was pending before the
    deactivation. History, stats and last_scheduled are updated; the
    reminder stays inactive with nothing scheduled.

    Raises:
        ConflictError: if the reminder is active again, or the occurrence
            was already resolved
    """
    if now is None:
        now = utc_now()

    if reminder.is_active:
        raise ConflictError(reminder.id, "reminder was changed while completing")
    if reminder.last_scheduled is not None and reminder.last_scheduled >= record.scheduled_time:
        raise ConflictError(reminder.id, "occurrence was already resolved")

    reminder.completion_history.append(record)
    apply_to_stats(reminder.stats, record.status)

    reminder.last_scheduled = record.scheduled_time
    reminder.updated_at = now

    logger.info(
        f"Reminder {reminder.id}: recorded {record.status} for "
        f"{record.scheduled_time.isoformat()} after deactivation"
    )
    return record


def skip_before_creation(reminder: Reminder) -> int:
    """Roll past occurrences that fall before the reminder was created.

    Nobody was reminded of those, so they are not recorded as missed.

    Returns:
        Number of occurrences skipped
    """
    skipped = 0
    while (
        reminder.created_at is not None
        and get_status(reminder) == ReminderStatus.PENDING
        and reminder.next_scheduled < reminder.created_at  # type: ignore[operator]
    ):
        scheduled = reminder.next_scheduled
        reminder.last_scheduled = scheduled
        reminder.next_scheduled = next_occurrence(reminder.rule, scheduled, scheduled)
        skipped += 1

    if skipped:
        logger.info(f"Reminder {reminder.id}: skipped {skipped} occurrence(s) before creation")
    return skipped


def sweep_missed(
    reminder: Reminder,
    now: datetime | None = None,
    grace: timedelta = timedelta(0),
    limit: int = 100,
) -> list[CompletionRecord]:
    """Back-fill occurrences left unresolved past the grace period as missed.

    Each missed occurrence is rolled forward from itself rather than from
    now, so every skipped-over occurrence gets its own record. Occurrences
    before the reminder was created are rolled past without a record.

    Returns:
        The records added, oldest first
    """
    if now is None:
        now = utc_now()

    cutoff = now - grace
    records: list[CompletionRecord] = []

    skipped = skip_before_creation(reminder)

    while len(records) < limit and get_status(reminder) == ReminderStatus.PENDING:
        scheduled = reminder.next_scheduled
        if scheduled is None or scheduled >= cutoff:
            break
        records.append(record_completion(reminder, "missed", at=None, now=scheduled))

    if records or skipped:
        reminder.updated_at = now
    if records:
        logger.info(f"Reminder {reminder.id}: back-filled {len(records)} missed occurrence(s)")
        if len(records) == limit:
            logger.warning(f"Reminder {reminder.id}: back-fill stopped at limit {limit}")

    return records
