"""Data models."""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Literal


Frequency = Literal["once", "daily", "weekly", "monthly", "custom"]
IntervalUnit = Literal["day", "week", "month"]
CompletionStatus = Literal["completed", "skipped", "missed"]
ReminderType = Literal[
    "medication", "measurement", "appointment", "activity", "nutrition", "water", "custom"
]
Priority = Literal["low", "medium", "high", "critical"]


@dataclass(frozen=True)
class CustomInterval:
    """Repeat every `value` units."""

    value: int
    unit: IntervalUnit


@dataclass(frozen=True)
class RecurrenceRule:
    """A validated, normalized repeating schedule.

    Build instances with engine.rules.build_rule, which fills in the
    weekly/monthly day defaults. The calculator never changes a rule.
    """

    frequency: Frequency
    start_date: date
    time_of_day: time
    end_date: date | None = None
    days_of_week: frozenset[int] = frozenset()  # 0 = Monday
    days_of_month: frozenset[int] = frozenset()
    custom_interval: CustomInterval | None = None
    timezone: str = "UTC"


@dataclass
class CompletionRecord:
    """One resolved occurrence."""

    scheduled_time: datetime  # UTC
    status: CompletionStatus
    completed_time: datetime | None = None  # UTC, only for "completed"
    notes: str | None = None
    id: int | None = None


@dataclass
class AdherenceStats:
    """Counters kept in step with the completion history."""

    total_scheduled: int = 0
    total_completed: int = 0
    total_skipped: int = 0
    total_missed: int = 0
    adherence_rate: float = 0.0


@dataclass
class Reminder:
    """A family member's reminder and its scheduling state.

    metadata is stored as-is and never read by the engine. Domain payloads
    live there: the medication or appointment a reminder points at, and the
    notification settings used by delivery adapters (lead offsets before
    each occurrence, channels such as email or push, repeat count).
    """

    family_member_id: int
    reminder_type: ReminderType
    title: str
    rule: RecurrenceRule
    is_active: bool = True
    last_scheduled: datetime | None = None  # UTC
    next_scheduled: datetime | None = None  # UTC
    completion_history: list[CompletionRecord] = field(default_factory=list)
    stats: AdherenceStats = field(default_factory=AdherenceStats)
    description: str | None = None
    priority: Priority = "medium"
    metadata: dict[str, Any] = field(default_factory=dict)  # opaque payload
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None


@dataclass
class ReminderFilter:
    """Repository query filter. None means "any"."""

    family_member_id: int | None = None
    reminder_type: ReminderType | None = None
    is_active: bool | None = None
    next_from: datetime | None = None
    next_to: datetime | None = None


@dataclass
class DueReminders:
    """Reminders classified against a due window around now."""

    past: list[Reminder] = field(default_factory=list)
    current: list[Reminder] = field(default_factory=list)
    upcoming: list[Reminder] = field(default_factory=list)
