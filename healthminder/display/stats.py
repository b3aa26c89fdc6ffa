"""Adherence statistics across a family member's reminders."""

from datetime import datetime, timedelta

from healthminder.db.models import Reminder
from healthminder.engine.completion import adherence_rate
from healthminder.engine.state import ReminderStatus, get_status
from healthminder.utils.time_utils import utc_now


def get_member_stats(reminders: list[Reminder], now: datetime | None = None) -> dict:
    """Aggregate statistics over one family member's reminders.

    Returns:
        Dict with counts by state, overall adherence and per-type adherence
    """
    if now is None:
        now = utc_now()

    stats: dict = {}
    stats['total_reminders'] = len(reminders)

    statuses = [get_status(r) for r in reminders]
    stats['pending'] = statuses.count(ReminderStatus.PENDING)
    stats['exhausted'] = statuses.count(ReminderStatus.EXHAUSTED)
    stats['inactive'] = statuses.count(ReminderStatus.INACTIVE)

    # Overall adherence, weighted by occurrences rather than averaged per reminder
    scheduled = sum(r.stats.total_scheduled for r in reminders)
    completed = sum(r.stats.total_completed for r in reminders)
    stats['total_scheduled'] = scheduled
    stats['total_completed'] = completed
    stats['total_skipped'] = sum(r.stats.total_skipped for r in reminders)
    stats['total_missed'] = sum(r.stats.total_missed for r in reminders)
    stats['adherence_rate'] = adherence_rate(completed, scheduled)

    by_type: dict[str, list[int]] = {}
    for reminder in reminders:
        counts = by_type.setdefault(reminder.reminder_type, [0, 0])
        counts[0] += reminder.stats.total_completed
        counts[1] += reminder.stats.total_scheduled
    stats['adherence_by_type'] = {
        reminder_type: adherence_rate(done, total)
        for reminder_type, (done, total) in sorted(by_type.items())
    }

    # Least adhered reminder that has any history
    tracked = [r for r in reminders if r.stats.total_scheduled > 0]
    if tracked:
        worst = min(tracked, key=lambda r: r.stats.adherence_rate)
        stats['lowest_adherence'] = {
            'title': worst.title,
            'rate': worst.stats.adherence_rate,
        }
    else:
        stats['lowest_adherence'] = None

    # Overdue and upcoming in next 7 days
    scheduled_next = [r for r in reminders if r.next_scheduled is not None]
    stats['overdue'] = len([r for r in scheduled_next if r.next_scheduled < now])  # type: ignore[operator]
    week_from_now = now + timedelta(days=7)
    stats['upcoming_week'] = len(
        [r for r in scheduled_next if now <= r.next_scheduled <= week_from_now]  # type: ignore[operator]
    )

    return stats


def format_stats_message(stats: dict) -> str:
    """Format statistics into a readable message."""
    lines = ["Reminder Statistics\n"]

    # Overview
    lines.append("Overview")
    lines.append(f"Total reminders: {stats['total_reminders']}")
    lines.append(f"Pending: {stats['pending']}")
    lines.append(f"Finished: {stats['exhausted']}")
    lines.append(f"Inactive: {stats['inactive']}")
    lines.append(f"Overdue: {stats['overdue']}")
    lines.append(f"Upcoming (7 days): {stats['upcoming_week']}\n")

    # Adherence
    lines.append("Adherence")
    lines.append(f"Overall: {stats['adherence_rate']:.1f}%")
    lines.append(
        f"Completed {stats['total_completed']}, skipped {stats['total_skipped']}, "
        f"missed {stats['total_missed']} of {stats['total_scheduled']}"
    )
    for reminder_type, rate in stats['adherence_by_type'].items():
        lines.append(f"{reminder_type.title()}: {rate:.1f}%")
    if stats['lowest_adherence']:
        lines.append(
            f"Needs attention: {stats['lowest_adherence']['title']} "
            f"({stats['lowest_adherence']['rate']:.1f}%)"
        )

    return "\n".join(lines)
