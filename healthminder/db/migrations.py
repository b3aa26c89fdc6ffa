"""Database migration runner.

Migrations are numbered; the applied level is kept in SQLite's
user_version pragma.
"""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


async def _apply_base_schema(db: aiosqlite.Connection) -> None:
    with open(SCHEMA_PATH) as f:
        schema_sql = f.read()
    await db.executescript(schema_sql)


MIGRATIONS = [
    (1, _apply_base_schema),
]


async def get_schema_version(db: aiosqlite.Connection) -> int:
    async with db.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        return row[0] if row else 0


async def run_migrations(db_path: Path) -> int:
    """Apply pending migrations and return the resulting schema version."""
    db_path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(db_path) as db:
        current = await get_schema_version(db)

        for version, migrate in MIGRATIONS:
            if version <= current:
                continue
            await migrate(db)
            await db.execute(f"PRAGMA user_version = {version}")
            await db.commit()
            current = version
            logger.info(f"Applied migration {version}")

        logger.info(f"Database at {db_path} is at schema version {current}")
        return current
