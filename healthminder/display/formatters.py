"""Plain-text formatters for reminders."""

from datetime import datetime

from healthminder.db.models import DueReminders, RecurrenceRule, Reminder
from healthminder.engine.state import get_status
from healthminder.utils.constants import (
    FREQUENCY_LABELS,
    REMINDER_TYPE_LABELS,
    WEEKDAY_LABELS,
)
from healthminder.utils.time_utils import format_relative_time, from_utc, utc_now


def type_title(reminder: Reminder) -> str:
    """E.g. "Medication Reminder"."""
    label = REMINDER_TYPE_LABELS.get(reminder.reminder_type, reminder.reminder_type.title())
    return f"{label} Reminder"


def describe_rule(rule: RecurrenceRule) -> str:
    """Human-readable rule summary.

    Examples:
        "Every day at 08:00"
        "Weekly (Monday, Thursday) at 09:00"
        "Monthly (days 1, 15) at 10:00"
        "Custom (every 2 weeks) at 07:30"
    """
    text = FREQUENCY_LABELS.get(rule.frequency, rule.frequency)

    if rule.frequency == "once":
        text += f" on {rule.start_date.strftime('%b %d, %Y')}"
    elif rule.frequency == "weekly" and rule.days_of_week:
        days = ", ".join(WEEKDAY_LABELS[d] for d in sorted(rule.days_of_week))
        text += f" ({days})"
    elif rule.frequency == "monthly" and rule.days_of_month:
        days = ", ".join(str(d) for d in sorted(rule.days_of_month))
        text += f" (day{'s' if len(rule.days_of_month) > 1 else ''} {days})"
    elif rule.frequency == "custom" and rule.custom_interval:
        value = rule.custom_interval.value
        unit = rule.custom_interval.unit
        text += f" (every {value} {unit}{'s' if value != 1 else ''})"

    text += f" at {rule.time_of_day.strftime('%H:%M')}"

    if rule.end_date:
        text += f", until {rule.end_date.strftime('%b %d, %Y')}"

    return text


def format_reminder(reminder: Reminder, now: datetime | None = None, tz: str | None = None) -> str:
    """Format a reminder as a multi-line block."""
    if now is None:
        now = utc_now()
    tz = tz or reminder.rule.timezone

    lines = [f"{reminder.title} (ID: {reminder.id})"]
    lines.append(f"{type_title(reminder)}, {reminder.priority} priority")
    lines.append(f"Repeats: {describe_rule(reminder.rule)}")

    if reminder.next_scheduled:
        next_local = from_utc(reminder.next_scheduled, tz)
        relative = format_relative_time(reminder.next_scheduled, now)
        lines.append(f"Next: {next_local.strftime('%b %d, %Y at %H:%M')} ({relative})")
    else:
        lines.append(f"Next: none ({get_status(reminder).value})")

    stats = reminder.stats
    if stats.total_scheduled:
        lines.append(
            f"Adherence: {stats.adherence_rate:.1f}% "
            f"({stats.total_completed}/{stats.total_scheduled} completed)"
        )

    if reminder.description:
        lines.append(f"\n{reminder.description}")

    return "\n".join(lines)


def format_reminder_list(reminders: list[Reminder], now: datetime | None = None) -> str:
    """Format a list of reminders, one short entry each."""
    if not reminders:
        return "No reminders."

    if now is None:
        now = utc_now()

    lines = [f"Reminders ({len(reminders)})"]

    for reminder in reminders:
        if reminder.next_scheduled:
            due = format_relative_time(reminder.next_scheduled, now)
        else:
            due = get_status(reminder).value
        lines.append(f"- {reminder.title} (ID: {reminder.id}): {due}")

    return "\n".join(lines)


def format_due_summary(due: DueReminders, now: datetime | None = None) -> str:
    """One line per current reminder, plus counts for the other partitions."""
    if now is None:
        now = utc_now()

    lines = [
        f"Due now: {len(due.current)} (past: {len(due.past)}, upcoming: {len(due.upcoming)})"
    ]
    for reminder in due.current:
        relative = format_relative_time(reminder.next_scheduled, now)  # type: ignore[arg-type]
        lines.append(
            f"- [{reminder.priority}] {reminder.title} for member "
            f"{reminder.family_member_id} ({relative})"
        )
    return "\n".join(lines)
