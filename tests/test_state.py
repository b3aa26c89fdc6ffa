"""Tests for the reminder state machine and completion recording."""

import copy
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from healthminder.engine.completion import (
    adherence_rate,
    record_after_deactivation,
    record_completion,
    recompute_stats,
    sweep_missed,
)
from healthminder.engine.rules import build_rule
from healthminder.engine.state import (
    ReminderStatus,
    create_reminder,
    deactivate,
    edit_rule,
    get_status,
    reactivate,
)
from healthminder.utils.error_handler import ConflictError, NotDueError

UTC = ZoneInfo("UTC")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def daily_reminder(now: datetime, **rule_kwargs):
    rule = build_rule("daily", date(2026, 1, 1), "09:00", **rule_kwargs)
    return create_reminder(1, "medication", "Blood pressure pill", rule, now=now)


def test_create_schedules_first_occurrence():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))

    assert reminder.is_active
    assert reminder.next_scheduled == utc(2026, 1, 1, 9, 0)
    assert reminder.last_scheduled is None
    assert get_status(reminder) == ReminderStatus.PENDING


def test_create_expired_once_is_exhausted():
    """A one-time reminder in the past is exhausted from the start."""
    rule = build_rule("once", date(2026, 1, 5), "09:00")
    reminder = create_reminder(1, "appointment", "Dentist", rule, now=utc(2026, 1, 10, 0, 0))

    assert reminder.next_scheduled is None
    assert get_status(reminder) == ReminderStatus.EXHAUSTED


def test_create_rejects_bad_fields():
    rule = build_rule("daily", date(2026, 1, 1), "09:00")

    with pytest.raises(ValueError):
        create_reminder(1, "medication", "   ", rule)
    with pytest.raises(ValueError):
        create_reminder(1, "medication", "x" * 101, rule)
    with pytest.raises(ValueError):
        create_reminder(1, "vitamins", "Pill", rule)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        create_reminder(1, "medication", "Pill", rule, priority="urgent")  # type: ignore[arg-type]


def test_metadata_is_opaque():
    rule = build_rule("daily", date(2026, 1, 1), "09:00")
    payload = {"medication_id": 42, "dosage": "5mg", "with_food": True}
    reminder = create_reminder(1, "medication", "Pill", rule, metadata=payload, now=utc(2026, 1, 1))

    assert reminder.metadata == payload
    assert reminder.metadata is not payload


def test_deactivate_and_reactivate():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    record_completion(reminder, "completed", now=utc(2026, 1, 1, 9, 5))

    assert deactivate(reminder) == ReminderStatus.INACTIVE
    assert reminder.next_scheduled is None
    assert len(reminder.completion_history) == 1

    assert reactivate(reminder, now=utc(2026, 1, 5, 12, 0)) == ReminderStatus.PENDING
    assert reminder.next_scheduled == utc(2026, 1, 6, 9, 0)
    assert len(reminder.completion_history) == 1


def test_edit_rule_can_revive_exhausted_reminder():
    rule = build_rule("once", date(2026, 1, 5), "09:00")
    now = utc(2026, 1, 10, 0, 0)
    reminder = create_reminder(1, "appointment", "Checkup", rule, now=now)
    assert get_status(reminder) == ReminderStatus.EXHAUSTED

    new_rule = build_rule("once", date(2026, 1, 20), "10:30")
    assert edit_rule(reminder, new_rule, now) == ReminderStatus.PENDING
    assert reminder.next_scheduled == utc(2026, 1, 20, 10, 30)


def test_edit_rule_keeps_inactive_unscheduled():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    deactivate(reminder)

    new_rule = build_rule("daily", date(2026, 1, 1), "18:00")
    assert edit_rule(reminder, new_rule, utc(2026, 1, 2)) == ReminderStatus.INACTIVE
    assert reminder.next_scheduled is None


def test_record_completion_rolls_forward():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    at = utc(2026, 1, 1, 9, 3)

    record = record_completion(reminder, "completed", notes="Taken with water", at=at, now=at)

    assert record.scheduled_time == utc(2026, 1, 1, 9, 0)
    assert record.completed_time == at
    assert record.notes == "Taken with water"
    assert reminder.last_scheduled == utc(2026, 1, 1, 9, 0)
    assert reminder.next_scheduled == utc(2026, 1, 2, 9, 0)
    assert reminder.stats.total_scheduled == 1
    assert reminder.stats.adherence_rate == 100.0


def test_skipped_and_missed_have_no_completed_time():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))

    skipped = record_completion(reminder, "skipped", now=utc(2026, 1, 1, 9, 5))
    missed = record_completion(reminder, "missed", now=utc(2026, 1, 2, 9, 5))

    assert skipped.completed_time is None
    assert missed.completed_time is None


def test_record_completion_on_inactive_is_rejected():
    """Completing an inactive reminder fails and changes nothing."""
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    deactivate(reminder)
    snapshot = copy.deepcopy(reminder)

    with pytest.raises(NotDueError):
        record_completion(reminder, "completed", now=utc(2026, 1, 1, 9, 5))

    assert reminder == snapshot


def test_record_completion_on_exhausted_is_rejected():
    rule = build_rule("once", date(2026, 1, 15), "09:00")
    reminder = create_reminder(1, "appointment", "Dentist", rule, now=utc(2026, 1, 10))
    record_completion(reminder, "completed", now=utc(2026, 1, 15, 9, 10))

    assert get_status(reminder) == ReminderStatus.EXHAUSTED
    with pytest.raises(NotDueError):
        record_completion(reminder, "completed", now=utc(2026, 1, 15, 9, 11))
    assert reminder.stats.total_scheduled == 1


def test_stale_token_conflicts():
    """Two completions acting on the same occurrence: only the first applies."""
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    token = reminder.next_scheduled
    now = utc(2026, 1, 1, 9, 5)

    record_completion(reminder, "completed", now=now, expected_next=token)
    snapshot = copy.deepcopy(reminder)

    with pytest.raises(ConflictError):
        record_completion(reminder, "completed", now=now, expected_next=token)

    assert reminder == snapshot
    assert reminder.stats.total_scheduled == 1


def test_unknown_status_rejected():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    with pytest.raises(ValueError):
        record_completion(reminder, "done", now=utc(2026, 1, 1, 9, 5))  # type: ignore[arg-type]
    assert reminder.completion_history == []


def test_adherence_rate():
    assert adherence_rate(0, 0) == 0.0
    assert adherence_rate(2, 3) == 66.7
    assert adherence_rate(1, 8) == 12.5
    assert adherence_rate(5, 5) == 100.0


def test_stats_track_history():
    """Incremental counters agree with a full recount after every step."""
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    now = utc(2026, 1, 1, 9, 5)

    for status in ["completed", "skipped", "completed", "missed", "completed", "completed"]:
        record_completion(reminder, status, now=now)  # type: ignore[arg-type]
        now += timedelta(days=1)

        stats = reminder.stats
        assert stats.total_scheduled == len(reminder.completion_history)
        assert stats == recompute_stats(reminder.completion_history)
        assert 0 <= stats.adherence_rate <= 100
        assert stats.adherence_rate == round(100 * stats.total_completed / stats.total_scheduled, 1)

    assert reminder.stats.total_completed == 4
    assert reminder.stats.total_skipped == 1
    assert reminder.stats.total_missed == 1
    assert reminder.stats.adherence_rate == 66.7


def test_custom_interval_completions_are_fourteen_days_apart():
    rule = build_rule("custom", date(2026, 1, 1), "09:00", interval_value=2, interval_unit="week")
    reminder = create_reminder(1, "measurement", "Weigh in", rule, now=utc(2026, 1, 1, 8, 0))

    record_completion(reminder, "completed", now=utc(2026, 1, 1, 9, 10))
    first = reminder.next_scheduled
    record_completion(reminder, "completed", now=utc(2026, 1, 15, 9, 10))
    second = reminder.next_scheduled

    assert first == utc(2026, 1, 15, 9, 0)
    assert second - first == timedelta(days=14)


def test_sweep_missed_backfills_each_occurrence():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))

    records = sweep_missed(reminder, now=utc(2026, 1, 4, 12, 0), grace=timedelta(hours=2))

    assert [r.scheduled_time for r in records] == [
        utc(2026, 1, 1, 9, 0),
        utc(2026, 1, 2, 9, 0),
        utc(2026, 1, 3, 9, 0),
        utc(2026, 1, 4, 9, 0),
    ]
    assert all(r.status == "missed" for r in records)
    assert reminder.next_scheduled == utc(2026, 1, 5, 9, 0)
    assert reminder.stats.total_missed == 4
    assert reminder.stats.adherence_rate == 0.0


def test_sweep_missed_respects_grace_and_limit():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))

    # Within the grace period: nothing to do
    assert sweep_missed(reminder, now=utc(2026, 1, 1, 10, 0), grace=timedelta(hours=2)) == []

    records = sweep_missed(reminder, now=utc(2026, 1, 10, 12, 0), limit=2)
    assert len(records) == 2
    assert reminder.next_scheduled == utc(2026, 1, 3, 9, 0)


def test_sweep_missed_backfills_custom_gap():
    rule = build_rule("custom", date(2026, 1, 1), "09:00", interval_value=1, interval_unit="week")
    reminder = create_reminder(1, "activity", "Long walk", rule, now=utc(2026, 1, 1, 8, 0))

    records = sweep_missed(reminder, now=utc(2026, 1, 30, 0, 0))

    assert len(records) == 5  # Jan 1, 8, 15, 22, 29
    assert reminder.next_scheduled == utc(2026, 2, 5, 9, 0)


def test_sweep_missed_ignores_inactive():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    deactivate(reminder)

    assert sweep_missed(reminder, now=utc(2026, 2, 1)) == []


def test_completion_recorded_after_deactivation():
    """A completion that raced a deactivation lands in history; scheduling stays off."""
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    stale = copy.deepcopy(reminder)
    deactivate(reminder)

    record = record_completion(stale, "completed", now=utc(2026, 1, 1, 9, 2))
    record_after_deactivation(reminder, record, now=utc(2026, 1, 1, 9, 3))

    assert get_status(reminder) == ReminderStatus.INACTIVE
    assert reminder.next_scheduled is None
    assert reminder.last_scheduled == utc(2026, 1, 1, 9, 0)
    assert [r.status for r in reminder.completion_history] == ["completed"]
    assert reminder.stats == recompute_stats(reminder.completion_history)


def test_completion_after_deactivation_applies_once():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    stale = copy.deepcopy(reminder)
    deactivate(reminder)
    record = record_completion(stale, "completed", now=utc(2026, 1, 1, 9, 2))
    record_after_deactivation(reminder, record, now=utc(2026, 1, 1, 9, 3))

    with pytest.raises(ConflictError):
        record_after_deactivation(reminder, copy.deepcopy(record), now=utc(2026, 1, 1, 9, 4))
    assert reminder.stats.total_scheduled == 1


def test_completion_after_deactivation_requires_inactive():
    reminder = daily_reminder(utc(2026, 1, 1, 8, 0))
    stale = copy.deepcopy(reminder)
    record = record_completion(stale, "completed", now=utc(2026, 1, 1, 9, 2))

    with pytest.raises(ConflictError):
        record_after_deactivation(reminder, record)
    assert reminder.completion_history == []


def test_sweep_missed_skips_occurrences_before_creation():
    """A stale custom start only back-fills from the day the reminder was created."""
    rule = build_rule("custom", date(2025, 1, 1), "09:00", interval_value=1, interval_unit="day")
    reminder = create_reminder(1, "medication", "Antibiotic", rule, now=utc(2026, 1, 1, 8, 0))
    assert reminder.next_scheduled == utc(2025, 1, 2, 9, 0)

    records = sweep_missed(reminder, now=utc(2026, 1, 3, 12, 0), limit=1000)

    assert [r.scheduled_time for r in records] == [
        utc(2026, 1, 1, 9, 0),
        utc(2026, 1, 2, 9, 0),
        utc(2026, 1, 3, 9, 0),
    ]
    assert reminder.stats.total_missed == 3
    assert reminder.stats.total_scheduled == len(reminder.completion_history)
    assert reminder.next_scheduled == utc(2026, 1, 4, 9, 0)


def test_sweep_missed_right_after_creation_records_nothing():
    rule = build_rule("custom", date(2025, 1, 1), "09:00", interval_value=1, interval_unit="day")
    reminder = create_reminder(1, "medication", "Antibiotic", rule, now=utc(2026, 1, 1, 8, 0))

    assert sweep_missed(reminder, now=utc(2026, 1, 1, 8, 0), limit=1000) == []
    assert reminder.next_scheduled == utc(2026, 1, 1, 9, 0)
    assert reminder.stats.adherence_rate == 0.0
    assert reminder.stats.total_scheduled == 0
