"""
Tests for the job runner.

These cover:
- Job definition validation
- Scheduled ticks (due selection, locking, failure handling)
- Non-blocking polls and the soft handler timeout
- On-demand runs while a job is busy
- Dispatch acknowledgments
- Shutdown while jobs are running
- End-to-end runs of the task reminder job
"""

import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from studyhub.modules.jobs.exceptions import InvalidJobDefinitionError, UnknownJobError
from studyhub.modules.jobs.models import JobOutcome, JobTrigger
from studyhub.modules.jobs.runner import CANCELLED_ERROR, TICK_JOB_ID, JobContext, JobRunner
from studyhub.modules.tasks.jobs import JOB_ID_TASK_REMINDER, register_task_jobs
from studyhub.modules.workers.jobs import JOB_ID_WORKER_REMINDER


@pytest.fixture
def runner(job_store, session_maker, clock):
    return JobRunner(job_store, session_maker, clock=clock, instance_id="test-runner")


async def _noop(context: JobContext) -> dict:
    return {"executed_at": context.now.isoformat()}


class TestDefine:
    """Tests for job definition."""

    def test_define_parses_schedule(self, runner):
        spec = runner.define("task_reminder", _noop, every="every 1 minute")
        assert spec.interval_seconds == 60
        assert runner.job_names == ["task_reminder"]

    def test_duplicate_name_rejected(self, runner):
        runner.define("task_reminder", _noop, every="every 1 minute")

        with pytest.raises(InvalidJobDefinitionError):
            runner.define("task_reminder", _noop, every="every 5 minutes")

    def test_non_callable_handler_rejected(self, runner):
        with pytest.raises(InvalidJobDefinitionError):
            runner.define("task_reminder", "send_task_reminders", every="every 1 minute")

    def test_malformed_schedule_rejected(self, runner):
        with pytest.raises(InvalidJobDefinitionError):
            runner.define("task_reminder", _noop, every="sometimes")

    def test_unknown_job_lookup(self, runner):
        runner.define("task_reminder", _noop)

        with pytest.raises(UnknownJobError) as exc_info:
            runner.get_spec("nope")
        assert "task_reminder" in exc_info.value.message

    def test_lock_ttl_must_exceed_handler_timeout(self, job_store, session_maker):
        with pytest.raises(ValueError):
            JobRunner(
                job_store,
                session_maker,
                lock_ttl=timedelta(minutes=1),
                handler_timeout=timedelta(minutes=2),
            )

    def test_poll_interval_must_be_positive(self, job_store, session_maker):
        with pytest.raises(ValueError):
            JobRunner(job_store, session_maker, poll_interval=timedelta(0))


class TestTick:
    """Tests for scheduled execution."""

    @pytest.mark.asyncio
    async def test_runs_due_job_and_records_success(self, runner, job_store, clock):
        handler = AsyncMock(return_value={"total_sent": 0})
        runner.define("task_reminder", handler, every="every 1 minute")
        await runner.register_all()

        results = await runner.tick()

        assert len(results) == 1
        assert results[0].outcome == JobOutcome.SUCCESS
        assert results[0].summary == {"total_sent": 0}
        handler.assert_awaited_once()
        context = handler.await_args.args[0]
        assert context.job_name == "task_reminder"
        assert context.now == clock.now

        job = await job_store.get("task_reminder")
        assert job.last_run_at == clock.now
        assert job.locked_until is None

    @pytest.mark.asyncio
    async def test_failing_handler_clears_lock_and_keeps_last_run(
        self, runner, job_store, clock
    ):
        """A raising handler is retry-eligible: lock cleared, last_run_at unchanged."""
        handler = AsyncMock(side_effect=RuntimeError("database exploded"))
        runner.define("task_reminder", handler, every="every 1 minute")
        await runner.register_all()

        results = await runner.tick()

        assert results[0].outcome == JobOutcome.FAILURE
        assert "RuntimeError: database exploded" in results[0].error

        job = await job_store.get("task_reminder")
        assert job.locked_until is None
        assert job.last_run_at is None
        assert await job_store.count_locked(clock.now) == 0

        runs = await job_store.recent_runs(job_name="task_reminder")
        assert runs[0].outcome == JobOutcome.FAILURE

        # Still due next cycle
        clock.advance(30)
        assert [job.name async for job in job_store.due_jobs(clock.now)] == ["task_reminder"]

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_jobs(self, runner):
        failing = AsyncMock(side_effect=ValueError("bad data"))
        healthy = AsyncMock(return_value=None)
        runner.define("a_failing", failing, every="every 1 minute")
        runner.define("b_healthy", healthy, every="every 1 minute")
        await runner.register_all()

        results = await runner.tick()

        outcomes = {result.job_name: result.outcome for result in results}
        assert outcomes == {"a_failing": JobOutcome.FAILURE, "b_healthy": JobOutcome.SUCCESS}

    @pytest.mark.asyncio
    async def test_job_locked_elsewhere_is_not_run(self, runner, job_store, clock):
        handler = AsyncMock()
        runner.define("task_reminder", handler, every="every 1 minute")
        await runner.register_all()
        await job_store.try_acquire_lock(
            "task_reminder", timedelta(minutes=10), clock.now, owner="other-runner"
        )

        results = await runner.tick()

        assert results == []
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_job_not_yet_due_is_not_run(self, runner, clock):
        handler = AsyncMock()
        runner.define("worker_reminder", handler, every="every 5 minutes")
        await runner.register_all()
        await runner.tick()

        clock.advance(60)
        results = await runner.tick()

        assert results == []
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_job_without_handler_is_ignored(self, runner, job_store):
        """Definitions registered by another process are left alone."""
        await job_store.register("legacy_job", "every 1 minute")

        assert await runner.tick() == []


class TestPoll:
    """Tests for the timer's poll, which starts jobs without waiting on them."""

    @pytest.mark.asyncio
    async def test_slow_job_does_not_hold_up_fast_job(self, runner, clock):
        release = asyncio.Event()
        slow_started = asyncio.Event()
        fast_runs = []

        async def slow(context: JobContext) -> None:
            slow_started.set()
            await release.wait()

        async def fast(context: JobContext) -> None:
            fast_runs.append(context.now)

        runner.define("fast", fast, every="every 1 second")
        runner.define("slow", slow, every="every 1 hour")
        await runner.register_all()

        first = await runner.poll()
        assert [task.get_name() for task in first] == ["job:fast", "job:slow"]
        await slow_started.wait()
        await first[0]

        for _ in range(2):
            clock.advance(1)
            tasks = await runner.poll()
            # slow still holds its lock, so only fast is started again
            assert [task.get_name() for task in tasks] == ["job:fast"]
            await asyncio.gather(*tasks)

        assert len(fast_runs) == 3
        assert not first[1].done()

        release.set()
        await runner.stop()
        assert first[1].done()

    @pytest.mark.asyncio
    async def test_timer_runs_float_poll_interval(self, job_store, session_maker, clock):
        runner = JobRunner(
            job_store, session_maker, clock=clock, poll_interval=timedelta(milliseconds=500)
        )

        await runner.start()
        trigger = runner._scheduler.get_job(TICK_JOB_ID).trigger
        await runner.stop()

        assert trigger.interval == timedelta(milliseconds=500)


class TestSoftTimeout:
    """Tests for the handler soft timeout warning."""

    @pytest.mark.asyncio
    async def test_slow_handler_warns_but_is_not_cancelled(
        self, job_store, session_maker, clock, caplog
    ):
        runner = JobRunner(
            job_store, session_maker, clock=clock, handler_timeout=timedelta(milliseconds=50)
        )

        async def slow(context: JobContext) -> dict:
            await asyncio.sleep(0.2)
            return {"done": True}

        runner.define("task_reminder", slow)
        await runner.register_all()

        with caplog.at_level(logging.WARNING, logger="studyhub.modules.jobs.runner"):
            result = await runner.run_now("task_reminder")

        assert result.outcome == JobOutcome.SUCCESS
        assert result.summary == {"done": True}
        assert "Job task_reminder still running after 0.05s soft timeout" in caplog.text

    @pytest.mark.asyncio
    async def test_fast_handler_does_not_warn(self, job_store, session_maker, clock, caplog):
        runner = JobRunner(
            job_store, session_maker, clock=clock, handler_timeout=timedelta(milliseconds=50)
        )
        runner.define("task_reminder", _noop)
        await runner.register_all()

        with caplog.at_level(logging.WARNING, logger="studyhub.modules.jobs.runner"):
            result = await runner.run_now("task_reminder")
            await asyncio.sleep(0.1)

        assert result.outcome == JobOutcome.SUCCESS
        assert "soft timeout" not in caplog.text


class TestRunNow:
    """Tests for on-demand runs."""

    @pytest.mark.asyncio
    async def test_runs_immediately_regardless_of_schedule(self, runner, job_store, clock):
        handler = AsyncMock(return_value=None)
        runner.define("worker_reminder", handler, every="every 5 minutes")
        await runner.register_all()
        await runner.tick()

        clock.advance(10)
        result = await runner.run_now("worker_reminder")

        assert result.outcome == JobOutcome.SUCCESS
        assert result.trigger == JobTrigger.MANUAL
        assert handler.await_count == 2

    @pytest.mark.asyncio
    async def test_busy_job_is_skipped_without_calling_handler(self, runner, job_store, clock):
        """run_now while the periodic run holds the lock reports busy."""
        handler = AsyncMock()
        runner.define(JOB_ID_WORKER_REMINDER, handler, every="every 5 minutes")
        await runner.register_all()
        await job_store.record_run(
            JOB_ID_WORKER_REMINDER,
            started_at=clock.now,
            finished_at=clock.now,
            outcome=JobOutcome.SUCCESS,
        )
        last_run_at = clock.now

        clock.advance(300)
        await job_store.try_acquire_lock(
            JOB_ID_WORKER_REMINDER, timedelta(minutes=10), clock.now, owner="periodic-run"
        )
        clock.advance(5)

        result = await runner.run_now(JOB_ID_WORKER_REMINDER)

        assert result.outcome == JobOutcome.SKIPPED
        assert result.is_busy
        assert result.error == "already running"
        handler.assert_not_awaited()

        job = await job_store.get(JOB_ID_WORKER_REMINDER)
        assert job.last_run_at == last_run_at
        assert job.locked_by == "periodic-run"

    @pytest.mark.asyncio
    async def test_unknown_job_raises(self, runner):
        with pytest.raises(UnknownJobError):
            await runner.run_now("nope")


class TestDispatch:
    """Tests for fire-and-acknowledge dispatch."""

    @pytest.mark.asyncio
    async def test_accepted_then_busy_while_running(self, runner, job_store):
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_handler(context: JobContext) -> None:
            started.set()
            await release.wait()

        runner.define("task_reminder", slow_handler, every="every 1 minute")
        await runner.register_all()

        first = await runner.dispatch(["task_reminder"])
        await started.wait()
        second = await runner.dispatch(["task_reminder"])

        assert [ack.status for ack in first] == ["accepted"]
        assert [ack.status for ack in second] == ["busy"]

        release.set()
        await runner.stop()

        runs = await job_store.recent_runs(job_name="task_reminder")
        assert len(runs) == 1
        assert runs[0].outcome == JobOutcome.SUCCESS
        assert runs[0].trigger == JobTrigger.MANUAL

    @pytest.mark.asyncio
    async def test_acceptance_does_not_imply_success(self, runner, job_store):
        """A failing job is still acknowledged as accepted."""
        runner.define("task_reminder", AsyncMock(side_effect=RuntimeError("boom")))
        await runner.register_all()

        acks = await runner.dispatch(["task_reminder"])
        await runner.stop()

        assert acks[0].status == "accepted"
        runs = await job_store.recent_runs(job_name="task_reminder")
        assert runs[0].outcome == JobOutcome.FAILURE

    @pytest.mark.asyncio
    async def test_unknown_name_rejects_whole_batch(self, runner):
        handler = AsyncMock()
        runner.define("task_reminder", handler, every="every 1 minute")
        await runner.register_all()

        with pytest.raises(UnknownJobError):
            await runner.dispatch(["task_reminder", "nope"])

        await runner.stop()
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate_names_dispatched_once(self, runner):
        handler = AsyncMock()
        runner.define("task_reminder", handler, every="every 1 minute")
        await runner.register_all()

        acks = await runner.dispatch(["task_reminder", "task_reminder"])
        await runner.stop()

        assert len(acks) == 1
        handler.assert_awaited_once()


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_registers_jobs_and_stop_shuts_down(self, runner, job_store):
        runner.define("task_reminder", _noop, every="every 1 minute")

        async with runner:
            assert runner.running
            assert await job_store.get("task_reminder") is not None

        assert not runner.running

    @pytest.mark.asyncio
    async def test_stop_waits_for_handler_started_by_timer(self, job_store, session_maker, clock):
        started = asyncio.Event()
        finished = []

        async def handler(context: JobContext) -> None:
            started.set()
            await asyncio.sleep(0.3)
            finished.append(context.job_name)

        runner = JobRunner(
            job_store, session_maker, clock=clock, poll_interval=timedelta(milliseconds=50)
        )
        runner.define("task_reminder", handler, every="every 1 hour")
        await runner.start()
        await asyncio.wait_for(started.wait(), timeout=5)

        await runner.stop(timeout=10)

        assert finished == ["task_reminder"]
        runs = await job_store.recent_runs(job_name="task_reminder")
        assert [(run.outcome, run.error) for run in runs] == [(JobOutcome.SUCCESS, None)]
        assert (await job_store.get("task_reminder")).locked_until is None

    @pytest.mark.asyncio
    async def test_cancelled_run_is_recorded_and_unlocked(self, runner, job_store):
        started = asyncio.Event()

        async def handler(context: JobContext) -> None:
            started.set()
            await asyncio.Event().wait()

        runner.define("task_reminder", handler, every="every 1 minute")
        await runner.register_all()
        await runner.dispatch(["task_reminder"])
        await started.wait()

        (task,) = runner._in_flight
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        runs = await job_store.recent_runs(job_name="task_reminder")
        assert runs[0].outcome == JobOutcome.FAILURE
        assert runs[0].error == CANCELLED_ERROR
        assert (await job_store.get("task_reminder")).locked_until is None

    @pytest.mark.asyncio
    async def test_unexpected_error_in_background_run_is_logged(
        self, runner, job_store, caplog
    ):
        runner.define("task_reminder", AsyncMock(return_value=None), every="every 1 minute")
        await runner.register_all()

        with (
            patch.object(job_store, "record_run", AsyncMock(side_effect=RuntimeError("disk full"))),
            caplog.at_level(logging.ERROR, logger="studyhub.modules.jobs.runner"),
        ):
            acks = await runner.dispatch(["task_reminder"])
            await runner.stop()

        assert acks[0].status == "accepted"
        assert "Background task job:task_reminder crashed: disk full" in caplog.text
        assert (await job_store.get("task_reminder")).locked_until is None


class TestEndToEnd:
    """Full runs of production jobs against the database."""

    @pytest.mark.asyncio
    async def test_task_reminder_runs_after_first_interval(self, runner, job_store, clock):
        """
        Register task_reminder (1 minute), advance 61 seconds with no prior
        run: it is due, runs, releases its lock and records the run time.
        """
        register_task_jobs(runner)
        await runner.register_all()

        now = clock.advance(61)
        due = [job.name async for job in job_store.due_jobs(now)]
        assert due == [JOB_ID_TASK_REMINDER]

        with patch("studyhub.modules.tasks.jobs.send_task_reminder", new=AsyncMock()):
            results = await runner.tick()

        assert [result.outcome for result in results] == [JobOutcome.SUCCESS]
        assert results[0].summary["total_errors"] == 0
        assert await job_store.count_locked(now) == 0

        job = await job_store.get(JOB_ID_TASK_REMINDER)
        assert job.last_run_at == now
        assert job.next_run_at == now + timedelta(minutes=1)
