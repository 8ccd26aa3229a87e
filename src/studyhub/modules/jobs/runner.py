"""
Job Runner

Drives periodic and on-demand execution of registered jobs, enforcing
single-flight semantics per job name through the job store's lock.

Lifecycle:
    runner = JobRunner(store, async_session_maker)
    register_all_jobs(runner)           # define name -> handler pairs
    await runner.start()                # registers jobs, starts the timer
    ...
    await runner.stop()                 # pauses the timer, waits for runs

Contracts:
- poll(): starts every due, unlocked job in the background and returns;
  this is what the timer calls, so one slow job never delays the others
- tick(): same selection as poll(), but waits for the results
- run_now(name): runs one job immediately, returns its JobRunResult;
  a held lock yields a "skipped" (busy) result without calling the handler
- dispatch(names): acknowledges each job as "accepted" or "busy" right away
  and runs accepted jobs in the background; outcomes are observable only
  through logs and job_runs rows

Error Handling:
- Handler exceptions are wrapped in HandlerExecutionError and logged; they
  never propagate out of the runner
- Every execution records its run and releases its lock on every exit path,
  including cancellation (recorded as a failure with an explicit error)
- A failed run does not advance last_run_at, so it is retried next cycle
"""

import asyncio
import logging
import os
import socket
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyhub.core.scheduler import create_scheduler
from studyhub.modules.jobs.exceptions import (
    HandlerExecutionError,
    InvalidJobDefinitionError,
    JobError,
    LockContention,
    UnknownJobError,
)
from studyhub.modules.jobs.helpers import Schedule, parse_schedule, validate_job_name
from studyhub.modules.jobs.models import JobOutcome, JobTrigger
from studyhub.modules.jobs.store import JobStore

logger = logging.getLogger(__name__)

TICK_JOB_ID = "job_runner_tick"

DEFAULT_POLL_INTERVAL = timedelta(seconds=30)
DEFAULT_LOCK_TTL = timedelta(minutes=10)
DEFAULT_HANDLER_TIMEOUT = timedelta(minutes=2)

CANCELLED_ERROR = "Cancelled before completion"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class JobContext:
    """
    What a handler gets to work with.

    Handlers read and write domain records through ``session_maker`` and use
    ``now`` as the reference time for due-ness checks. Scheduling metadata is
    deliberately absent.
    """

    job_name: str
    now: datetime
    session_maker: async_sessionmaker[AsyncSession]


JobHandler = Callable[[JobContext], Awaitable[dict[str, Any] | None]]


@dataclass(frozen=True)
class JobSpec:
    """A defined job: name, handler and interval (None for on-demand)."""

    name: str
    handler: JobHandler
    interval_seconds: int | None


@dataclass
class JobRunResult:
    """Outcome of one execution attempt."""

    job_name: str
    outcome: JobOutcome
    trigger: JobTrigger
    started_at: datetime
    finished_at: datetime
    error: str | None = None
    summary: dict[str, Any] | None = field(default=None)

    @property
    def is_busy(self) -> bool:
        return self.outcome == JobOutcome.SKIPPED

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "outcome": self.outcome.value,
            "trigger": self.trigger.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "error": self.error,
        }


@dataclass(frozen=True)
class DispatchAck:
    """Acknowledgment that a job was (or was not) handed to the runner."""

    job_name: str
    status: str  # "accepted" | "busy"
    dispatched_at: datetime


class JobRunner:
    """Runs registered jobs on a timer and on demand."""

    def __init__(
        self,
        store: JobStore,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        poll_interval: timedelta = DEFAULT_POLL_INTERVAL,
        lock_ttl: timedelta = DEFAULT_LOCK_TTL,
        handler_timeout: timedelta = DEFAULT_HANDLER_TIMEOUT,
        clock: Callable[[], datetime] = _utcnow,
        instance_id: str | None = None,
    ):
        if poll_interval <= timedelta(0):
            raise ValueError(f"Poll interval must be positive, got {poll_interval}")
        if lock_ttl <= handler_timeout:
            raise ValueError(
                "Lock TTL must be longer than the handler soft timeout "
                f"({lock_ttl} <= {handler_timeout})"
            )

        self.store = store
        self._session_maker = session_maker
        self.poll_interval = poll_interval
        self.lock_ttl = lock_ttl
        self.handler_timeout = handler_timeout
        self._clock = clock
        self.instance_id = instance_id or (
            f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        )

        self._jobs: dict[str, JobSpec] = {}
        self._scheduler: AsyncIOScheduler | None = None
        self._in_flight: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def define(self, name: str, handler: JobHandler, every: Schedule = None) -> JobSpec:
        """
        Define a job. Must be called before ``start()``.

        Raises:
            InvalidJobDefinitionError: If the name is taken or invalid, the
                handler is not callable, or the schedule is malformed
        """
        name = validate_job_name(name)
        if name in self._jobs:
            raise InvalidJobDefinitionError(f"Job '{name}' is already defined")
        if not callable(handler):
            raise InvalidJobDefinitionError(f"Handler for job '{name}' is not callable")

        spec = JobSpec(name=name, handler=handler, interval_seconds=parse_schedule(every))
        self._jobs[name] = spec
        logger.debug(f"Defined job {name}")
        return spec

    @property
    def job_names(self) -> list[str]:
        return sorted(self._jobs)

    def get_spec(self, name: str) -> JobSpec:
        try:
            return self._jobs[name]
        except KeyError:
            raise UnknownJobError(name, list(self._jobs)) from None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def register_all(self) -> None:
        """
        Register every defined job in the store.

        Raises:
            StoreUnavailableError: If the database is unreachable
        """
        for spec in self._jobs.values():
            await self.store.register(
                spec.name,
                timedelta(seconds=spec.interval_seconds) if spec.interval_seconds else None,
            )

    async def start(self) -> None:
        """Register jobs and start the periodic poll."""
        if self.running:
            logger.warning("Job runner already running")
            return

        logger.info(f"Starting job runner {self.instance_id} with {len(self._jobs)} jobs...")
        await self.register_all()

        self._scheduler = create_scheduler()
        self._scheduler.add_job(
            self._timer_poll,
            trigger=IntervalTrigger(seconds=self.poll_interval.total_seconds()),
            id=TICK_JOB_ID,
            name="Run due background jobs",
            replace_existing=True,
        )
        self._scheduler.start()

        logger.info(
            f"Job runner started, polling every {self.poll_interval.total_seconds():g}s"
        )

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop polling, wait for in-flight runs, then shut the timer down.

        Runs still going after ``timeout`` seconds are left alone; their
        locks expire after the lock TTL.
        """
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.pause()

        if self._in_flight:
            logger.info(f"Waiting for {len(self._in_flight)} running jobs to finish...")
            remaining = await self._drain(timeout)
            if remaining:
                logger.warning(
                    f"{remaining} jobs still running at shutdown; their locks will expire"
                )

        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)

        logger.info("Job runner stopped")

    async def _drain(self, timeout: float | None) -> int:
        # A poll in progress can still start runs, so wait until the set stays empty
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._in_flight:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                break
            await asyncio.wait(set(self._in_flight), timeout=remaining)
        return len(self._in_flight)

    async def __aenter__(self) -> "JobRunner":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def tick(self, now: datetime | None = None) -> list[JobRunResult]:
        """
        Run every due job once and wait for the results.

        Jobs whose lock is held elsewhere are reported as skipped. Acquired
        jobs run concurrently.
        """
        tasks, results = await self._start_due(now or self._clock())
        if tasks:
            results.extend(await asyncio.gather(*tasks))
        return results

    async def poll(self, now: datetime | None = None) -> list[asyncio.Task]:
        """
        Start every due job in the background and return without waiting.

        A job still running from an earlier poll holds its lock, so it is
        skipped rather than started twice.
        """
        tasks, _ = await self._start_due(now or self._clock())
        return tasks

    async def _timer_poll(self) -> None:
        task = asyncio.current_task()
        self._in_flight.add(task)
        try:
            await self.poll()
        finally:
            self._in_flight.discard(task)

    async def _start_due(
        self, now: datetime
    ) -> tuple[list[asyncio.Task], list[JobRunResult]]:
        skipped: list[JobRunResult] = []
        acquired: list[JobSpec] = []

        try:
            async for job in self.store.due_jobs(now):
                spec = self._jobs.get(job.name)
                if spec is None:
                    logger.debug(f"Job {job.name} is due but has no handler in this process")
                    continue

                try:
                    await self._acquire(spec.name, now)
                except LockContention:
                    logger.debug(f"Job {spec.name} is already running, skipping this cycle")
                    skipped.append(self._skipped(spec.name, JobTrigger.SCHEDULE, now))
                    continue

                acquired.append(spec)
        finally:
            # Jobs already locked still run if the store fails mid-scan
            if acquired:
                logger.info(f"Running due jobs: {[spec.name for spec in acquired]}")
            tasks = [self._spawn(spec, JobTrigger.SCHEDULE) for spec in acquired]

        return tasks, skipped

    async def run_now(self, name: str) -> JobRunResult:
        """
        Run a job immediately, bypassing its schedule.

        Returns:
            The run result; outcome is SKIPPED when another run holds the lock

        Raises:
            UnknownJobError: If no job with this name is defined
        """
        spec = self.get_spec(name)
        now = self._clock()

        try:
            await self._acquire(spec.name, now)
        except LockContention:
            logger.info(f"Job {spec.name} is busy, manual run skipped")
            return self._skipped(spec.name, JobTrigger.MANUAL, now)

        return await self._spawn(spec, JobTrigger.MANUAL)

    async def dispatch(self, names: Iterable[str]) -> list[DispatchAck]:
        """
        Hand jobs to the runner without waiting for them to finish.

        All names are validated before anything runs.

        Raises:
            UnknownJobError: If any name is not defined
            StoreUnavailableError: If the lock cannot be attempted
        """
        specs = [self.get_spec(name) for name in dict.fromkeys(names)]
        acks: list[DispatchAck] = []

        for spec in specs:
            now = self._clock()
            try:
                await self._acquire(spec.name, now)
            except LockContention:
                logger.info(f"Job {spec.name} is busy, dispatch skipped")
                acks.append(DispatchAck(job_name=spec.name, status="busy", dispatched_at=now))
                continue

            self._spawn(spec, JobTrigger.MANUAL)
            acks.append(DispatchAck(job_name=spec.name, status="accepted", dispatched_at=now))

        return acks

    def _spawn(self, spec: JobSpec, trigger: JobTrigger) -> asyncio.Task:
        """Run an acquired job as a task owned by the runner."""
        task = asyncio.create_task(self._execute(spec, trigger), name=f"job:{spec.name}")
        self._in_flight.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} crashed: {exc}", exc_info=exc)

    async def _acquire(self, name: str, now: datetime) -> None:
        if not await self.store.try_acquire_lock(name, self.lock_ttl, now, owner=self.instance_id):
            raise LockContention(name)

    def _skipped(self, name: str, trigger: JobTrigger, now: datetime) -> JobRunResult:
        return JobRunResult(
            job_name=name,
            outcome=JobOutcome.SKIPPED,
            trigger=trigger,
            started_at=now,
            finished_at=now,
            error="already running",
        )

    def _warn_slow(self, name: str) -> None:
        logger.warning(
            f"Job {name} still running after {self.handler_timeout.total_seconds():g}s "
            f"soft timeout"
        )

    async def _execute(self, spec: JobSpec, trigger: JobTrigger) -> JobRunResult:
        """
        Run a handler whose lock is already held.

        Always records the run and releases the lock, whatever the handler does.
        """
        started_at = self._clock()
        context = JobContext(
            job_name=spec.name, now=started_at, session_maker=self._session_maker
        )
        outcome = JobOutcome.FAILURE
        error: str | None = None
        summary: dict[str, Any] | None = None

        loop = asyncio.get_running_loop()
        slow_warning = loop.call_later(
            self.handler_timeout.total_seconds(), self._warn_slow, spec.name
        )

        logger.info(f"Job {spec.name} started at {started_at.isoformat()} ({trigger.value})")

        try:
            summary = await spec.handler(context)
            outcome = JobOutcome.SUCCESS
        except asyncio.CancelledError:
            error = CANCELLED_ERROR
            logger.warning(f"Job {spec.name} cancelled at {self._clock().isoformat()}")
            raise
        except Exception as e:
            failure = HandlerExecutionError(spec.name, e)
            error = failure.message
            logger.error(
                f"Job {spec.name} failed at {self._clock().isoformat()}: {failure.message}",
                exc_info=e,
            )
        finally:
            slow_warning.cancel()
            finished_at = self._clock()
            try:
                await self.store.record_run(
                    spec.name,
                    started_at=started_at,
                    finished_at=finished_at,
                    outcome=outcome,
                    error=error,
                    trigger=trigger,
                )
            except JobError as e:
                logger.error(f"Could not record run of job {spec.name}: {e.message}")
            finally:
                try:
                    await self.store.release_lock(spec.name, owner=self.instance_id)
                except JobError as e:
                    logger.error(
                        f"Could not release lock on job {spec.name}, it expires in "
                        f"{int(self.lock_ttl.total_seconds())}s: {e.message}"
                    )

        if outcome == JobOutcome.SUCCESS:
            duration = (finished_at - started_at).total_seconds()
            logger.info(f"Job {spec.name} completed successfully in {duration:.2f}s")

        return JobRunResult(
            job_name=spec.name,
            outcome=outcome,
            trigger=trigger,
            started_at=started_at,
            finished_at=finished_at,
            error=error,
            summary=summary if isinstance(summary, dict) else None,
        )
