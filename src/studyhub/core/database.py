"""
Database Configuration

Async SQLAlchemy engine, session factory and declarative base.

Usage in FastAPI:
    @router.get("/items")
    async def list_items(db: AsyncSession = Depends(get_db)):
        ...

Background jobs open their own sessions with ``async_session_maker()``.
"""

import enum
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

from sqlalchemy import DateTime, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from studyhub.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def enum_values(enum_class: type[enum.Enum]) -> list[str]:
    """Persist enum values (not member names) as database labels."""
    return [member.value for member in enum_class]


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime column normalised to UTC.

    Backends without native timezone support (SQLite) hand back naive values;
    those are read as UTC so comparisons against ``datetime.now(UTC)`` work.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes are not allowed, use datetime.now(UTC)")
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    """
    Verify database connectivity.

    Schema is managed by Alembic; this only checks the connection so the
    process can fail fast on startup.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
