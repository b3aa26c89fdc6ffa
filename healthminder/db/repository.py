"""Database repository - all SQL queries."""

import asyncio
import json
import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Iterable, List

import aiosqlite

from healthminder.db.models import (
    AdherenceStats,
    CompletionRecord,
    CustomInterval,
    RecurrenceRule,
    Reminder,
    ReminderFilter,
)
from healthminder.utils.error_handler import ConflictError, ReminderNotFoundError
from healthminder.utils.time_utils import to_utc, utc_now

logger = logging.getLogger(__name__)


def _ts(dt: datetime | None) -> str | None:
    """Store timestamps as UTC ISO strings with a fixed layout so they sort."""
    if dt is None:
        return None
    return to_utc(dt, "UTC").isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _join_ints(values: Iterable[int]) -> str:
    return ",".join(str(v) for v in sorted(values))


def _split_ints(value: str | None) -> frozenset[int]:
    if not value:
        return frozenset()
    return frozenset(int(v) for v in value.split(","))


class Repository:
    """Database access layer.

    Writes are conditional on the reminder's version (optimistic
    concurrency); a stale write raises ConflictError and changes nothing.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        # One shared connection: a write transaction's statements must not
        # interleave with other callers' statements
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys = ON")
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    # Reminder operations

    async def create_reminder(self, reminder: Reminder) -> Reminder:
        """Insert a new reminder (and any history it carries)."""
        now = utc_now()
        reminder.created_at = reminder.created_at or now
        reminder.updated_at = reminder.updated_at or now
        reminder.version = 1

        async with self._lock:
            try:
                async with self.db.execute(
                    f"""
                    INSERT INTO reminders ({', '.join(self._COLUMNS)}, created_at)
                    VALUES ({', '.join('?' for _ in self._COLUMNS)}, ?)
                    RETURNING id
                    """,
                    (*self._reminder_params(reminder), _ts(reminder.created_at)),
                ) as cursor:
                    row = await cursor.fetchone()
                reminder.id = row["id"]

                await self._insert_history(reminder)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(f"Created reminder {reminder.id} for family member {reminder.family_member_id}")
        return reminder

    async def get_reminder(self, reminder_id: int) -> Reminder | None:
        """Get a reminder by ID, with its completion history."""
        async with self._lock:
            async with self.db.execute(
                "SELECT * FROM reminders WHERE id = ?", (reminder_id,)
            ) as cursor:
                row = await cursor.fetchone()
            if not row:
                return None
            history = await self._fetch_history([reminder_id])

        return self._row_to_reminder(row, history.get(reminder_id, []))

    async def load_reminder(self, reminder_id: int) -> Reminder:
        """Get a reminder by ID or raise ReminderNotFoundError."""
        reminder = await self.get_reminder(reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(reminder_id)
        return reminder

    async def save_reminder(self, reminder: Reminder, expected_version: int) -> Reminder:
        """Write a reminder back if nobody else has since.

        New completion records (those without an id) are appended in the
        same transaction. On success the reminder's version is bumped.

        Raises:
            ConflictError: if the stored version is not expected_version
            ReminderNotFoundError: if the reminder no longer exists
        """
        if reminder.id is None:
            raise ValueError("Cannot save a reminder that was never created")

        new_version = expected_version + 1
        reminder.updated_at = reminder.updated_at or utc_now()

        async with self._lock:
            try:
                cursor = await self.db.execute(
                    f"""
                    UPDATE reminders SET
                        {', '.join(f'{column} = ?' for column in self._COLUMNS)}
                    WHERE id = ? AND version = ?
                    """,
                    (
                        *self._reminder_params(reminder, version=new_version),
                        reminder.id,
                        expected_version,
                    ),
                )
                if cursor.rowcount == 0:
                    await self.db.rollback()
                    await self._raise_write_failure(reminder.id, expected_version)

                await self._insert_history(reminder)
                await self.db.commit()
            except aiosqlite.Error:
                await self.db.rollback()
                raise

        reminder.version = new_version
        return reminder

    async def query_reminders(self, reminder_filter: ReminderFilter | None = None) -> List[Reminder]:
        """Get reminders matching a filter, ordered by next occurrence."""
        reminder_filter = reminder_filter or ReminderFilter()
        clauses = []
        params: list = []

        if reminder_filter.family_member_id is not None:
            clauses.append("family_member_id = ?")
            params.append(reminder_filter.family_member_id)
        if reminder_filter.reminder_type is not None:
            clauses.append("reminder_type = ?")
            params.append(reminder_filter.reminder_type)
        if reminder_filter.is_active is not None:
            clauses.append("is_active = ?")
            params.append(1 if reminder_filter.is_active else 0)
        if reminder_filter.next_from is not None:
            clauses.append("next_scheduled >= ?")
            params.append(_ts(reminder_filter.next_from))
        if reminder_filter.next_to is not None:
            clauses.append("next_scheduled <= ?")
            params.append(_ts(reminder_filter.next_to))

        query = "SELECT * FROM reminders"
        if clauses:
            query += f" WHERE {' AND '.join(clauses)}"
        # Unscheduled reminders sort last
        query += " ORDER BY next_scheduled IS NULL, next_scheduled, id"

        async with self._lock:
            async with self.db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            history = await self._fetch_history([row["id"] for row in rows])

        return [self._row_to_reminder(row, history.get(row["id"], [])) for row in rows]

    async def delete_reminder(self, reminder_id: int) -> bool:
        """Delete a reminder and its completion history."""
        async with self._lock:
            cursor = await self.db.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            await self.db.commit()

        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted reminder {reminder_id}")
        return deleted

    # Completion history operations

    async def get_completion_history(self, reminder_id: int) -> List[CompletionRecord]:
        """Get the completion history for a reminder, oldest first."""
        async with self._lock:
            history = await self._fetch_history([reminder_id])
        return history.get(reminder_id, [])

    # Helper methods

    _COLUMNS = (
        "family_member_id",
        "reminder_type",
        "title",
        "description",
        "priority",
        "metadata",
        "frequency",
        "start_date",
        "end_date",
        "time_of_day",
        "days_of_week",
        "days_of_month",
        "interval_value",
        "interval_unit",
        "timezone",
        "is_active",
        "last_scheduled",
        "next_scheduled",
        "total_scheduled",
        "total_completed",
        "total_skipped",
        "total_missed",
        "adherence_rate",
        "version",
        "updated_at",
    )

    def _reminder_params(self, reminder: Reminder, version: int | None = None) -> tuple:
        """Column values in _COLUMNS order."""
        rule = reminder.rule
        stats = reminder.stats
        interval = rule.custom_interval
        return (
            reminder.family_member_id,
            reminder.reminder_type,
            reminder.title,
            reminder.description,
            reminder.priority,
            json.dumps(reminder.metadata),
            rule.frequency,
            rule.start_date.isoformat(),
            rule.end_date.isoformat() if rule.end_date else None,
            rule.time_of_day.strftime("%H:%M"),
            _join_ints(rule.days_of_week),
            _join_ints(rule.days_of_month),
            interval.value if interval else None,
            interval.unit if interval else None,
            rule.timezone,
            1 if reminder.is_active else 0,
            _ts(reminder.last_scheduled),
            _ts(reminder.next_scheduled),
            stats.total_scheduled,
            stats.total_completed,
            stats.total_skipped,
            stats.total_missed,
            stats.adherence_rate,
            version if version is not None else reminder.version,
            _ts(reminder.updated_at),
        )

    async def _raise_write_failure(self, reminder_id: int, expected_version: int) -> None:
        async with self.db.execute(
            "SELECT version FROM reminders WHERE id = ?", (reminder_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            raise ReminderNotFoundError(reminder_id)

        logger.warning(
            f"Stale write on reminder {reminder_id}: expected version "
            f"{expected_version}, stored {row['version']}"
        )
        raise ConflictError(
            reminder_id, f"expected version {expected_version}, found {row['version']}"
        )

    async def _insert_history(self, reminder: Reminder) -> None:
        """Append completion records that have not been stored yet."""
        for record in reminder.completion_history:
            if record.id is not None:
                continue
            async with self.db.execute(
                """
                INSERT INTO completion_history (
                    reminder_id, scheduled_time, completed_time, status, notes
                ) VALUES (?, ?, ?, ?, ?)
                RETURNING id
                """,
                (
                    reminder.id,
                    _ts(record.scheduled_time),
                    _ts(record.completed_time),
                    record.status,
                    record.notes,
                ),
            ) as cursor:
                row = await cursor.fetchone()
            record.id = row["id"]

    async def _fetch_history(self, reminder_ids: List[int]) -> dict[int, List[CompletionRecord]]:
        history: dict[int, List[CompletionRecord]] = {}
        if not reminder_ids:
            return history

        placeholders = ", ".join("?" for _ in reminder_ids)
        async with self.db.execute(
            f"""
            SELECT * FROM completion_history
            WHERE reminder_id IN ({placeholders})
            ORDER BY id
            """,
            reminder_ids,
        ) as cursor:
            rows = await cursor.fetchall()

        for row in rows:
            history.setdefault(row["reminder_id"], []).append(
                CompletionRecord(
                    id=row["id"],
                    scheduled_time=_parse_ts(row["scheduled_time"]),  # type: ignore[arg-type]
                    completed_time=_parse_ts(row["completed_time"]),
                    status=row["status"],
                    notes=row["notes"],
                )
            )
        return history

    def _row_to_reminder(self, row: aiosqlite.Row, history: List[CompletionRecord]) -> Reminder:
        """Convert a database row to a Reminder object."""
        interval = None
        if row["interval_value"] is not None:
            interval = CustomInterval(value=row["interval_value"], unit=row["interval_unit"])

        rule = RecurrenceRule(
            frequency=row["frequency"],
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]) if row["end_date"] else None,
            time_of_day=time.fromisoformat(row["time_of_day"]),
            days_of_week=_split_ints(row["days_of_week"]),
            days_of_month=_split_ints(row["days_of_month"]),
            custom_interval=interval,
            timezone=row["timezone"],
        )

        return Reminder(
            id=row["id"],
            family_member_id=row["family_member_id"],
            reminder_type=row["reminder_type"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            metadata=json.loads(row["metadata"]),
            rule=rule,
            is_active=bool(row["is_active"]),
            last_scheduled=_parse_ts(row["last_scheduled"]),
            next_scheduled=_parse_ts(row["next_scheduled"]),
            completion_history=history,
            stats=AdherenceStats(
                total_scheduled=row["total_scheduled"],
                total_completed=row["total_completed"],
                total_skipped=row["total_skipped"],
                total_missed=row["total_missed"],
                adherence_rate=row["adherence_rate"],
            ),
            version=row["version"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )
