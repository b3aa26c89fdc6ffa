"""Constants and default values."""

from datetime import timedelta

# Weekday names accepted by rule construction (0 = Monday, like date.weekday())
WEEKDAY_NAMES = {
    "monday": 0,
    "mon": 0,
    "tuesday": 1,
    "tue": 1,
    "wednesday": 2,
    "wed": 2,
    "thursday": 3,
    "thu": 3,
    "friday": 4,
    "fri": 4,
    "saturday": 5,
    "sat": 5,
    "sunday": 6,
    "sun": 6,
}

WEEKDAY_LABELS = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

FREQUENCIES = ("once", "daily", "weekly", "monthly", "custom")
INTERVAL_UNITS = ("day", "week", "month")
COMPLETION_STATUSES = ("completed", "skipped", "missed")
REMINDER_TYPES = (
    "medication",
    "measurement",
    "appointment",
    "activity",
    "nutrition",
    "water",
    "custom",
)
PRIORITIES = ("low", "medium", "high", "critical")

FREQUENCY_LABELS = {
    "once": "Once",
    "daily": "Every day",
    "weekly": "Weekly",
    "monthly": "Monthly",
    "custom": "Custom",
}

REMINDER_TYPE_LABELS = {
    "medication": "Medication",
    "measurement": "Measurement",
    "appointment": "Appointment",
    "activity": "Activity",
    "nutrition": "Nutrition",
    "water": "Water",
    "custom": "Custom",
}

# A one-time reminder without an end date retires one day after it was due
ONCE_GRACE = timedelta(days=1)

# Limits
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

# Default timezone
DEFAULT_TIMEZONE = "UTC"
