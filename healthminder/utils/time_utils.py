"""Time and timezone utilities."""

import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return utc_now()


class FixedClock:
    """Clock that only moves when told to. Used in tests and replays."""

    def __init__(self, now: datetime):
        self._now = to_utc(now, "UTC")

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = to_utc(now, "UTC")

    def advance(self, delta: timedelta) -> None:
        self._now += delta


def to_utc(dt: datetime, tz: str) -> datetime:
    """Convert a timezone-aware datetime to UTC."""
    if dt.tzinfo is None:
        # Assume it's in the given timezone
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt.astimezone(UTC)


def from_utc(dt: datetime, tz: str) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(ZoneInfo(tz))


def at_time(day: date, time_of_day: time, tz: str) -> datetime:
    """The aware datetime for a local calendar day and wall-clock time."""
    return datetime.combine(day, time_of_day, tzinfo=ZoneInfo(tz))


def parse_time_of_day(value: str | time) -> time:
    """Parse a HH:MM (24-hour) string.

    Raises:
        ValueError: if the text is not a valid HH:MM time
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid time of day {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Format a datetime relative to now.

    Examples:
        "in 5 minutes"
        "in 2 hours"
        "tomorrow"
        "2 days overdue"
    """
    if now is None:
        now = utc_now()

    delta = dt - now
    total_seconds = delta.total_seconds()

    if total_seconds < 0:
        # Overdue
        abs_seconds = abs(total_seconds)
        if abs_seconds < 3600:
            minutes = int(abs_seconds / 60)
            return f"{minutes} minute{'s' if minutes != 1 else ''} overdue"
        elif abs_seconds < 86400:
            hours = int(abs_seconds / 3600)
            return f"{hours} hour{'s' if hours != 1 else ''} overdue"
        else:
            days = int(abs_seconds / 86400)
            return f"{days} day{'s' if days != 1 else ''} overdue"
    else:
        # Future
        if total_seconds < 3600:
            minutes = int(total_seconds / 60)
            return f"in {minutes} minute{'s' if minutes != 1 else ''}"
        elif total_seconds < 86400:
            hours = int(total_seconds / 3600)
            return f"in {hours} hour{'s' if hours != 1 else ''}"
        elif total_seconds < 172800:  # 2 days
            return "tomorrow"
        else:
            days = int(total_seconds / 86400)
            return f"in {days} days"
