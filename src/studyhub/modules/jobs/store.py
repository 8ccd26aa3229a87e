"""
Job Store

Durable registry of job definitions backed by SQL. It is the source of truth
for "is job X running" (the lock columns) and "when did X last succeed".

Design Principles:
- Every method opens and commits its own session (no caller transactions)
- Lock acquisition is a single conditional UPDATE, so concurrent runner
  processes polling the same database cannot both win
- Locks carry an expiry, so a crashed runner cannot block a job forever
- last_run_at only moves forward, and only on success
- Connectivity failures surface as StoreUnavailableError
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyhub.modules.jobs.exceptions import StoreUnavailableError
from studyhub.modules.jobs.helpers import (
    Schedule,
    describe_interval,
    parse_schedule,
    validate_job_name,
)
from studyhub.modules.jobs.models import JobDefinition, JobOutcome, JobRun, JobTrigger

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _not_locked(now: datetime):
    return or_(JobDefinition.locked_until.is_(None), JobDefinition.locked_until <= now)


class JobStore:
    """SQL-backed store of job definitions and run history."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._session_maker = session_maker
        self._batch_size = batch_size

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as db:
                yield db
        except (OperationalError, InterfaceError, OSError) as e:
            raise StoreUnavailableError(f"Job store unavailable: {e}") from e

    async def register(self, name: str, schedule: Schedule) -> None:
        """
        Register a job definition (idempotent upsert).

        Registering an existing name keeps the single existing row; only a
        changed interval is written back.

        Args:
            name: Unique job name
            schedule: Interval ("every 1 minute", timedelta) or None/"on-demand"

        Raises:
            InvalidJobDefinitionError: If the name or schedule is malformed
            StoreUnavailableError: If the database is unreachable
        """
        name = validate_job_name(name)
        interval = parse_schedule(schedule)

        async with self._session() as db:
            job = await db.get(JobDefinition, name)

            if job is None:
                db.add(JobDefinition(name=name, interval_seconds=interval))
                try:
                    await db.commit()
                except IntegrityError:
                    # Another process registered the same name first
                    await db.rollback()
                    logger.debug(f"Job {name} registered concurrently, keeping existing row")
                    return
                logger.info(f"Registered job: {name} ({describe_interval(interval)})")
                return

            if job.interval_seconds == interval:
                logger.debug(f"Job {name} already registered, nothing to update")
                return

            job.interval_seconds = interval
            if interval is not None and job.last_run_at is not None:
                job.next_run_at = job.last_run_at + timedelta(seconds=interval)
            else:
                job.next_run_at = None
            await db.commit()
            logger.info(f"Updated schedule for job {name}: {describe_interval(interval)}")

    async def try_acquire_lock(
        self,
        name: str,
        ttl: timedelta,
        now: datetime | None = None,
        owner: str | None = None,
    ) -> bool:
        """
        Atomically take the job's lock if no unexpired lock exists.

        Returns:
            True if this caller now holds the lock, False if another run
            holds it (or the job is not registered)
        """
        now = now or _utcnow()

        async with self._session() as db:
            result = await db.execute(
                update(JobDefinition)
                .where(JobDefinition.name == name, _not_locked(now))
                .values(locked_until=now + ttl, locked_by=owner)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

        acquired = result.rowcount == 1
        if acquired:
            logger.debug(f"Acquired lock on job {name} until {(now + ttl).isoformat()}")
        return acquired

    async def release_lock(self, name: str, owner: str | None = None) -> None:
        """
        Clear the job's lock. Idempotent.

        When ``owner`` is given, a lock since taken over by another runner
        (after this one's expired) is left alone.
        """
        stmt = update(JobDefinition).where(JobDefinition.name == name)
        if owner is not None:
            stmt = stmt.where(
                or_(JobDefinition.locked_by == owner, JobDefinition.locked_by.is_(None))
            )

        async with self._session() as db:
            await db.execute(
                stmt.values(locked_until=None, locked_by=None).execution_options(
                    synchronize_session=False
                )
            )
            await db.commit()

    async def record_run(
        self,
        name: str,
        *,
        started_at: datetime,
        finished_at: datetime,
        outcome: JobOutcome,
        error: str | None = None,
        trigger: JobTrigger = JobTrigger.SCHEDULE,
    ) -> JobRun:
        """
        Persist a finished run.

        On success, last_run_at advances to the run's start time (never
        backwards) and next_run_at follows from the interval. Failures leave
        both untouched so the job stays due for a retry.
        """
        async with self._session() as db:
            run = JobRun(
                job_name=name,
                trigger=trigger,
                outcome=outcome,
                started_at=started_at,
                finished_at=finished_at,
                error=error,
            )
            db.add(run)

            if outcome == JobOutcome.SUCCESS:
                job = await db.get(JobDefinition, name, with_for_update=True)
                if job is None:
                    logger.warning(f"Recorded run for unregistered job {name}")
                elif job.last_run_at is None or started_at > job.last_run_at:
                    job.last_run_at = started_at
                    if job.interval_seconds is not None:
                        job.next_run_at = started_at + timedelta(seconds=job.interval_seconds)

            await db.commit()
            return run

    async def due_jobs(self, now: datetime | None = None) -> AsyncIterator[JobDefinition]:
        """
        Yield recurring jobs that are due and unlocked at ``now``.

        The sequence is lazy and finite: rows are fetched in name order, one
        batch at a time. Calling again starts a fresh sequence.
        """
        now = now or _utcnow()
        after: str | None = None

        while True:
            stmt = (
                select(JobDefinition)
                .where(
                    JobDefinition.interval_seconds.is_not(None),
                    or_(JobDefinition.next_run_at.is_(None), JobDefinition.next_run_at <= now),
                    _not_locked(now),
                )
                .order_by(JobDefinition.name)
                .limit(self._batch_size)
            )
            if after is not None:
                stmt = stmt.where(JobDefinition.name > after)

            async with self._session() as db:
                result = await db.execute(stmt)
                batch = list(result.scalars().all())

            for job in batch:
                yield job

            if len(batch) < self._batch_size:
                return
            after = batch[-1].name

    async def get(self, name: str) -> JobDefinition | None:
        """Get a job definition by name."""
        async with self._session() as db:
            return await db.get(JobDefinition, name)

    async def list_definitions(self) -> list[JobDefinition]:
        """All job definitions ordered by name."""
        async with self._session() as db:
            result = await db.execute(select(JobDefinition).order_by(JobDefinition.name))
            return list(result.scalars().all())

    async def recent_runs(self, limit: int = 50, job_name: str | None = None) -> list[JobRun]:
        """Most recent runs first, optionally for a single job."""
        stmt = select(JobRun).order_by(JobRun.started_at.desc()).limit(limit)
        if job_name is not None:
            stmt = stmt.where(JobRun.job_name == job_name)

        async with self._session() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def count_locked(self, now: datetime | None = None) -> int:
        """Number of jobs holding an unexpired lock at ``now``."""
        now = now or _utcnow()
        async with self._session() as db:
            result = await db.execute(
                select(func.count())
                .select_from(JobDefinition)
                .where(JobDefinition.locked_until > now)
            )
            return result.scalar_one()
