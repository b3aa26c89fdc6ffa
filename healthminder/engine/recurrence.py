"""Next-occurrence calculation for recurrence rules."""

from calendar import monthrange
from datetime import datetime, time, timedelta

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, WEEKLY, rrule

from healthminder.db.models import CustomInterval, RecurrenceRule
from healthminder.utils.constants import ONCE_GRACE
from healthminder.utils.time_utils import UTC, at_time, from_utc, utc_now


def next_occurrence(
    rule: RecurrenceRule,
    last_scheduled: datetime | None,
    now: datetime | None = None,
) -> datetime | None:
    """Get the next occurrence of a rule.

    Returns the earliest time that matches the rule's day/time constraints,
    is strictly after last_scheduled when there is one (at or after now
    otherwise), is not before the start date, and is not past the end date.

    Args:
        rule: A rule built by engine.rules.build_rule
        last_scheduled: The most recently resolved occurrence (aware), or None
        now: Current time (aware), defaults to utcnow()

    Returns:
        Next occurrence as an aware UTC datetime, or None if the rule has
        no further occurrences
    """
    if now is None:
        now = utc_now()

    if rule.frequency == "once":
        candidate = _next_once(rule, last_scheduled, now)
    elif rule.frequency == "custom":
        candidate = _next_custom(rule, last_scheduled, now)
    else:
        floor, inclusive = _search_floor(rule, last_scheduled, now)
        if rule.frequency == "monthly":
            candidate = _next_monthly(rule, floor, inclusive)
        else:
            candidate = _next_from_rrule(rule, floor, inclusive)

    if candidate is None or not _within_end(rule, candidate):
        return None

    return candidate.astimezone(UTC)


def _search_floor(
    rule: RecurrenceRule, last_scheduled: datetime | None, now: datetime
) -> tuple[datetime, bool]:
    """Earliest acceptable time, and whether the floor itself is acceptable."""
    floor, inclusive = now, True
    if last_scheduled is not None and last_scheduled >= now:
        # Resolved ahead of time: the next one must come after it
        floor, inclusive = last_scheduled, False

    start = at_time(rule.start_date, time.min, rule.timezone)
    if start > floor:
        floor, inclusive = start, True

    return from_utc(floor, rule.timezone), inclusive


def _next_once(
    rule: RecurrenceRule, last_scheduled: datetime | None, now: datetime
) -> datetime | None:
    candidate = at_time(rule.start_date, rule.time_of_day, rule.timezone)

    # Expired, or already resolved
    if candidate < now:
        return None
    if last_scheduled is not None and candidate <= last_scheduled:
        return None

    return candidate


def _next_from_rrule(
    rule: RecurrenceRule, floor: datetime, inclusive: bool
) -> datetime | None:
    """Daily and weekly rules.

    Neither pattern depends on its phase, so the rrule can start on the
    floor's day instead of iterating forward from the rule's start date.
    """
    first_day = max(rule.start_date, floor.date())
    dtstart = at_time(first_day, rule.time_of_day, rule.timezone)

    if rule.frequency == "weekly":
        schedule = rrule(WEEKLY, dtstart=dtstart, byweekday=sorted(rule.days_of_week))
    else:
        schedule = rrule(DAILY, dtstart=dtstart)

    # rrule.after() returns the first occurrence after (or at, if inc) the floor
    return schedule.after(floor, inc=inclusive)


def _next_monthly(
    rule: RecurrenceRule, floor: datetime, inclusive: bool
) -> datetime | None:
    """Search the floor's month, then the next one.

    Selected days past the end of a short month clamp to its last day, so
    every month has at least one candidate and two months always suffice.
    """
    month_start = floor.date().replace(day=1)

    for offset in range(2):
        month = month_start + relativedelta(months=offset)
        last_day = monthrange(month.year, month.month)[1]

        for day in sorted({min(d, last_day) for d in rule.days_of_month}):
            candidate = at_time(month.replace(day=day), rule.time_of_day, rule.timezone)
            if candidate > floor or (inclusive and candidate == floor):
                return candidate

    return None


def _next_custom(
    rule: RecurrenceRule, last_scheduled: datetime | None, now: datetime
) -> datetime:
    interval = interval_delta(rule.custom_interval)  # type: ignore[arg-type]

    if last_scheduled is None:
        candidate = at_time(rule.start_date, rule.time_of_day, rule.timezone)
        # A single catch-up step; missed occurrences are back-filled by
        # engine.completion.sweep_missed, not here
        if candidate < now:
            candidate = at_time((candidate + interval).date(), rule.time_of_day, rule.timezone)
        return candidate

    last_local = from_utc(last_scheduled, rule.timezone)
    return at_time(last_local.date() + interval, rule.time_of_day, rule.timezone)


def interval_delta(interval: CustomInterval) -> relativedelta:
    """Convert a custom interval to a calendar delta (months clamp)."""
    if interval.unit == "week":
        return relativedelta(weeks=interval.value)
    elif interval.unit == "month":
        return relativedelta(months=interval.value)
    return relativedelta(days=interval.value)


def effective_end(rule: RecurrenceRule) -> datetime | None:
    """Last moment an occurrence may fall on, or None if open-ended."""
    if rule.end_date is not None:
        return at_time(rule.end_date + timedelta(days=1), time.min, rule.timezone) - timedelta(
            microseconds=1
        )
    if rule.frequency == "once":
        return at_time(rule.start_date, rule.time_of_day, rule.timezone) + ONCE_GRACE
    return None


def _within_end(rule: RecurrenceRule, candidate: datetime) -> bool:
    end = effective_end(rule)
    return end is None or candidate <= end
