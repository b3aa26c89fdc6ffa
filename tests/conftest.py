"""Shared test fixtures."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from healthminder.db.migrations import run_migrations
from healthminder.db.repository import Repository
from healthminder.service import ReminderService
from healthminder.utils.time_utils import FixedClock


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "healthminder.db"


@pytest_asyncio.fixture
async def repo(db_path):
    """A connected repository on a fresh database."""
    await run_migrations(db_path)
    repository = Repository(db_path)
    await repository.connect()
    yield repository
    await repository.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 1, 8, 0, tzinfo=ZoneInfo("UTC")))


@pytest.fixture
def service(repo, clock):
    return ReminderService(repo, clock)
