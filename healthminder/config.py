"""Configuration management from environment variables."""

import os
from datetime import timedelta
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/healthminder.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Engine
    HEARTBEAT_INTERVAL: int = int(os.getenv("HEARTBEAT_INTERVAL", "60"))
    DUE_WINDOW_MINUTES: int = int(os.getenv("DUE_WINDOW_MINUTES", "15"))
    MISSED_GRACE_MINUTES: int = int(os.getenv("MISSED_GRACE_MINUTES", "120"))
    MISSED_BACKFILL_LIMIT: int = int(os.getenv("MISSED_BACKFILL_LIMIT", "100"))
    DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "UTC")

    @classmethod
    def due_window(cls) -> timedelta:
        return timedelta(minutes=cls.DUE_WINDOW_MINUTES)

    @classmethod
    def missed_grace(cls) -> timedelta:
        return timedelta(minutes=cls.MISSED_GRACE_MINUTES)

    @classmethod
    def validate(cls) -> None:
        """Validate configuration."""
        if cls.LOG_LEVEL not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {cls.LOG_LEVEL!r}")

        if cls.HEARTBEAT_INTERVAL < 1:
            raise ValueError("HEARTBEAT_INTERVAL must be at least 1 second")

        if cls.DUE_WINDOW_MINUTES < 0 or cls.MISSED_GRACE_MINUTES < 0:
            raise ValueError("DUE_WINDOW_MINUTES and MISSED_GRACE_MINUTES cannot be negative")

        if cls.MISSED_BACKFILL_LIMIT < 1:
            raise ValueError("MISSED_BACKFILL_LIMIT must be at least 1")

        try:
            ZoneInfo(cls.DEFAULT_TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown DEFAULT_TIMEZONE {cls.DEFAULT_TIMEZONE!r}") from e

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
