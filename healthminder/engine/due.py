"""Due-reminder classification. Read-only: nothing here mutates a reminder."""

from datetime import datetime, time, timedelta
from typing import Iterable

from healthminder.db.models import DueReminders, Reminder
from healthminder.utils.time_utils import at_time, from_utc, utc_now


def _by_next(reminder: Reminder) -> datetime:
    return reminder.next_scheduled  # type: ignore[return-value]


def partition_due(
    reminders: Iterable[Reminder],
    now: datetime | None = None,
    window: timedelta = timedelta(minutes=15),
) -> DueReminders:
    """Split reminders into past, current and upcoming around now.

    past:     next_scheduled < now - window
    current:  now - window <= next_scheduled <= now + window
    upcoming: next_scheduled > now + window

    Reminders with nothing scheduled are left out. Each partition is
    ordered by next_scheduled.
    """
    if now is None:
        now = utc_now()

    lower = now - window
    upper = now + window
    due = DueReminders()

    for reminder in reminders:
        scheduled = reminder.next_scheduled
        if scheduled is None:
            continue
        if scheduled < lower:
            due.past.append(reminder)
        elif scheduled <= upper:
            due.current.append(reminder)
        else:
            due.upcoming.append(reminder)

    due.past.sort(key=_by_next)
    due.current.sort(key=_by_next)
    due.upcoming.sort(key=_by_next)
    return due


def today_reminders(
    reminders: Iterable[Reminder], now: datetime | None = None, tz: str = "UTC"
) -> list[Reminder]:
    """Active reminders whose next occurrence falls on today's local date."""
    if now is None:
        now = utc_now()

    today = from_utc(now, tz).date()
    start_of_day = at_time(today, time.min, tz)
    end_of_day = at_time(today, time.max, tz)

    return sorted(
        (
            r
            for r in reminders
            if r.is_active
            and r.next_scheduled is not None
            and start_of_day <= r.next_scheduled <= end_of_day
        ),
        key=_by_next,
    )


def upcoming_reminders(
    reminders: Iterable[Reminder], now: datetime | None = None, days: int = 7
) -> list[Reminder]:
    """Active reminders due between now and the given number of days ahead."""
    if now is None:
        now = utc_now()

    future = now + timedelta(days=days)
    return sorted(
        (
            r
            for r in reminders
            if r.is_active and r.next_scheduled is not None and now <= r.next_scheduled <= future
        ),
        key=_by_next,
    )
