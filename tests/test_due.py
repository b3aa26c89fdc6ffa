"""Tests for due-reminder classification."""

import copy
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from healthminder.db.models import Reminder
from healthminder.engine.due import partition_due, today_reminders, upcoming_reminders
from healthminder.engine.rules import build_rule

UTC = ZoneInfo("UTC")
NOW = datetime(2026, 1, 10, 12, 0, tzinfo=UTC)


def make_reminder(reminder_id: int, next_scheduled: datetime | None, is_active: bool = True) -> Reminder:
    return Reminder(
        id=reminder_id,
        family_member_id=1,
        reminder_type="water",
        title=f"Reminder {reminder_id}",
        rule=build_rule("daily", date(2026, 1, 1), "09:00"),
        is_active=is_active,
        next_scheduled=next_scheduled,
    )


def sample_reminders() -> list[Reminder]:
    return [
        make_reminder(1, NOW + timedelta(hours=1)),  # upcoming
        make_reminder(2, NOW - timedelta(hours=1)),  # past
        make_reminder(3, NOW + timedelta(minutes=10)),  # current
        make_reminder(4, NOW - timedelta(minutes=15)),  # current, lower edge
        make_reminder(5, NOW + timedelta(minutes=15)),  # current, upper edge
        make_reminder(6, None, is_active=False),  # nothing scheduled
        make_reminder(7, None),  # exhausted
    ]


def ids(reminders: list[Reminder]) -> list[int]:
    return [r.id for r in reminders]  # type: ignore[misc]


def test_partition_due():
    due = partition_due(sample_reminders(), NOW, timedelta(minutes=15))

    assert ids(due.past) == [2]
    assert ids(due.current) == [4, 3, 5]
    assert ids(due.upcoming) == [1]


def test_partition_due_zero_window():
    due = partition_due(sample_reminders(), NOW, timedelta(0))

    assert ids(due.past) == [2, 4]
    assert ids(due.current) == []
    assert ids(due.upcoming) == [3, 5, 1]


def test_partition_due_is_read_only_and_repeatable():
    reminders = sample_reminders()
    snapshot = copy.deepcopy(reminders)

    first = partition_due(reminders, NOW)
    second = partition_due(reminders, NOW)

    assert reminders == snapshot
    assert first == second


def test_today_reminders():
    reminders = [
        make_reminder(1, datetime(2026, 1, 10, 18, 0, tzinfo=UTC)),
        make_reminder(2, datetime(2026, 1, 11, 9, 0, tzinfo=UTC)),
        make_reminder(3, datetime(2026, 1, 10, 9, 0, tzinfo=UTC)),
        make_reminder(4, datetime(2026, 1, 10, 13, 0, tzinfo=UTC), is_active=False),
    ]

    assert ids(today_reminders(reminders, NOW)) == [3, 1]


def test_today_reminders_uses_local_day():
    # 03:00 UTC on Jan 11 is still Jan 10 in New York
    reminders = [make_reminder(1, datetime(2026, 1, 11, 3, 0, tzinfo=UTC))]

    assert ids(today_reminders(reminders, NOW, tz="America/New_York")) == [1]
    assert ids(today_reminders(reminders, NOW)) == []


def test_upcoming_reminders():
    reminders = [
        make_reminder(1, NOW + timedelta(days=3)),
        make_reminder(2, NOW + timedelta(days=8)),
        make_reminder(3, NOW - timedelta(minutes=1)),
        make_reminder(4, NOW + timedelta(hours=2)),
    ]

    assert ids(upcoming_reminders(reminders, NOW)) == [4, 1]
    assert ids(upcoming_reminders(reminders, NOW, days=10)) == [4, 1, 2]
