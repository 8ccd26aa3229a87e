"""
Shared fixtures for StudyHub tests.

Store, runner and handler tests run against a throwaway SQLite database
(aiosqlite); everything else uses mocks.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studyhub.core import rate_limit
from studyhub.models import Base
from studyhub.modules.jobs.store import JobStore


class FakeClock:
    """Controllable UTC clock for the job runner."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def start_time():
    """Fixed reference time for scheduling tests."""
    return datetime(2026, 3, 2, 9, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock(start_time):
    return FakeClock(start_time)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Session factory bound to a fresh SQLite database with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'studyhub_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def job_store(session_maker):
    return JobStore(session_maker)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def mock_session_maker(mock_db):
    """Session factory whose sessions are all ``mock_db``."""
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=mock_db)
    session.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=session)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    """Start every test with an empty in-memory rate limit store."""
    rate_limit._memory_store.clear()
    yield
    rate_limit._memory_store.clear()
