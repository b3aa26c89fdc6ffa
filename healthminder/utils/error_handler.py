"""Engine exceptions and error logging."""

import logging
import traceback

logger = logging.getLogger(__name__)


class ReminderError(Exception):
    """Base class for reminder engine errors."""


class RuleValidationError(ReminderError, ValueError):
    """A recurrence rule was rejected at construction."""


class NotDueError(ReminderError):
    """A completion was recorded against a reminder with nothing pending."""

    def __init__(self, reminder_id: int | None, state: str):
        self.reminder_id = reminder_id
        self.state = state
        super().__init__(f"Reminder {reminder_id} has no pending occurrence ({state})")


class ConflictError(ReminderError):
    """A write lost against a concurrent writer; reload and retry."""

    def __init__(self, reminder_id: int | None, detail: str):
        self.reminder_id = reminder_id
        super().__init__(f"Conflict on reminder {reminder_id}: {detail}")


class ReminderNotFoundError(ReminderError):
    """No reminder with the given id."""

    def __init__(self, reminder_id: int):
        self.reminder_id = reminder_id
        super().__init__(f"Reminder {reminder_id} not found")


def log_exception(error: BaseException, context: str) -> None:
    """Log an error with its full traceback."""
    tb_list = traceback.format_exception(None, error, error.__traceback__)
    tb_string = "".join(tb_list)

    logger.error(f"Exception while {context}: {error}\n{tb_string}")
