"""Recurrence rule construction: validation and normalization."""

from datetime import date, time
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from healthminder.db.models import CustomInterval, RecurrenceRule
from healthminder.utils.constants import (
    DEFAULT_TIMEZONE,
    FREQUENCIES,
    INTERVAL_UNITS,
    WEEKDAY_NAMES,
)
from healthminder.utils.error_handler import RuleValidationError
from healthminder.utils.time_utils import parse_time_of_day


def parse_weekday(value: int | str) -> int:
    """Map a weekday name or number (0 = Monday) to its number."""
    if isinstance(value, bool):
        raise RuleValidationError(f"Invalid weekday {value!r}")
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise RuleValidationError(f"Weekday must be between 0 (Monday) and 6 (Sunday), got {value}")

    day = WEEKDAY_NAMES.get(str(value).strip().lower())
    if day is None:
        raise RuleValidationError(f"Unknown weekday {value!r}")
    return day


def build_rule(
    frequency: str,
    start_date: date,
    time_of_day: str | time,
    end_date: date | None = None,
    days_of_week: Iterable[int | str] | None = None,
    days_of_month: Iterable[int] | None = None,
    interval_value: int | None = None,
    interval_unit: str | None = None,
    timezone: str = DEFAULT_TIMEZONE,
) -> RecurrenceRule:
    """Validate the inputs and build a normalized RecurrenceRule.

    An empty weekly/monthly day selection defaults to the start date's
    weekday/day of month. Fields that do not belong to the frequency are
    rejected rather than ignored.

    Raises:
        RuleValidationError: if the rule is malformed
    """
    frequency = str(frequency).strip().lower()
    if frequency not in FREQUENCIES:
        raise RuleValidationError(
            f"Unknown frequency {frequency!r}, expected one of {', '.join(FREQUENCIES)}"
        )

    try:
        tod = parse_time_of_day(time_of_day)
    except ValueError as e:
        raise RuleValidationError(str(e)) from e

    if end_date is not None and end_date < start_date:
        raise RuleValidationError(
            f"End date {end_date.isoformat()} is before start date {start_date.isoformat()}"
        )

    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise RuleValidationError(f"Unknown timezone {timezone!r}") from e

    weekdays = list(days_of_week or [])
    monthdays = list(days_of_month or [])
    has_interval = interval_value is not None or interval_unit is not None

    if weekdays and frequency != "weekly":
        raise RuleValidationError("days_of_week only applies to weekly rules")
    if monthdays and frequency != "monthly":
        raise RuleValidationError("days_of_month only applies to monthly rules")
    if has_interval and frequency != "custom":
        raise RuleValidationError("A custom interval only applies to custom rules")

    rule_days_of_week: frozenset[int] = frozenset()
    rule_days_of_month: frozenset[int] = frozenset()
    custom_interval = None

    if frequency == "weekly":
        rule_days_of_week = frozenset(parse_weekday(d) for d in weekdays)
        if not rule_days_of_week:
            rule_days_of_week = frozenset({start_date.weekday()})

    elif frequency == "monthly":
        for day in monthdays:
            if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= 31:
                raise RuleValidationError(f"Day of month must be between 1 and 31, got {day!r}")
        rule_days_of_month = frozenset(monthdays) or frozenset({start_date.day})

    elif frequency == "custom":
        if interval_value is None or interval_unit is None:
            raise RuleValidationError("Custom rules require an interval value and unit")
        if isinstance(interval_value, bool) or not isinstance(interval_value, int) or interval_value < 1:
            raise RuleValidationError(f"Interval value must be a positive integer, got {interval_value!r}")
        unit = str(interval_unit).strip().lower().rstrip("s")
        if unit not in INTERVAL_UNITS:
            raise RuleValidationError(
                f"Unknown interval unit {interval_unit!r}, expected one of {', '.join(INTERVAL_UNITS)}"
            )
        custom_interval = CustomInterval(value=interval_value, unit=unit)  # type: ignore[arg-type]

    return RecurrenceRule(
        frequency=frequency,  # type: ignore[arg-type]
        start_date=start_date,
        time_of_day=tod,
        end_date=end_date,
        days_of_week=rule_days_of_week,
        days_of_month=rule_days_of_month,
        custom_interval=custom_interval,
        timezone=timezone,
    )
