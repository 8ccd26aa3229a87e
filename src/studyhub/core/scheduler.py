"""
Background Scheduler Timer

Builds the APScheduler AsyncIOScheduler that drives the job runner's
periodic tick. The scheduler only owns the timer; job selection, locking and
execution live in ``studyhub.modules.jobs.runner``.

Usage:
    scheduler = create_scheduler()
    scheduler.add_job(runner.poll, IntervalTrigger(seconds=30), id="job_runner_tick")
    scheduler.start()
    ...
    scheduler.shutdown(wait=True)
"""

import logging
from datetime import UTC, datetime

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


class SchedulerConfig:
    """Configuration for the timer scheduler."""

    TIMEZONE = "UTC"

    JOB_COALESCE = True  # Combine missed ticks into one
    JOB_MAX_INSTANCES = 1  # Polls only start jobs, so they finish quickly
    JOB_MISFIRE_GRACE_TIME = 30

    EXECUTORS = {
        "default": {"type": "asyncio"},
    }

    JOB_DEFAULTS = {
        "coalesce": JOB_COALESCE,
        "max_instances": JOB_MAX_INSTANCES,
        "misfire_grace_time": JOB_MISFIRE_GRACE_TIME,
    }


def _tick_listener(event: JobExecutionEvent) -> None:
    """
    Log timer-level failures.

    Handler failures are caught by the runner; anything reaching this
    listener escaped the tick itself (e.g. the job store went away).
    """
    if event.code == EVENT_JOB_MISSED:
        logger.warning(
            f"Scheduler tick {event.job_id} missed its run time "
            f"{event.scheduled_run_time.isoformat()}"
        )
        return

    logger.error(
        f"Scheduler tick {event.job_id} failed at {datetime.now(UTC).isoformat()}: "
        f"{event.exception}",
        exc_info=event.exception,
    )


def create_scheduler() -> AsyncIOScheduler:
    """
    Create an AsyncIOScheduler configured for the job runner.

    The scheduler is returned unstarted; it attaches to the running event
    loop when ``start()`` is called.
    """
    scheduler = AsyncIOScheduler(
        timezone=SchedulerConfig.TIMEZONE,
        executors=SchedulerConfig.EXECUTORS,
        job_defaults=SchedulerConfig.JOB_DEFAULTS,
    )
    scheduler.add_listener(_tick_listener, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
    return scheduler
