"""
Job Registry

Builds the job runner from settings and defines every job on it. Each domain
module owns its handlers and exposes a ``register_*_jobs(runner)`` function;
this module only wires them together.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studyhub.core.config import Settings, settings
from studyhub.core.database import async_session_maker
from studyhub.modules.jobs.runner import JobContext, JobRunner
from studyhub.modules.jobs.store import JobStore
from studyhub.modules.quizzes.jobs import JOB_ID_AUTO_SUBMIT, register_quiz_jobs
from studyhub.modules.tasks.jobs import JOB_ID_TASK_REMINDER, register_task_jobs
from studyhub.modules.workers.jobs import JOB_ID_WORKER_REMINDER, register_worker_jobs

logger = logging.getLogger(__name__)

JOB_ID_HEARTBEAT = "heartbeat"

# Jobs an external cron trigger runs when it does not name any
DEFAULT_TRIGGER_JOBS = (JOB_ID_AUTO_SUBMIT, JOB_ID_TASK_REMINDER, JOB_ID_WORKER_REMINDER)


async def heartbeat(context: JobContext) -> dict[str, Any]:
    """No-op job confirming the runner executes jobs in this deployment."""
    logger.info(f"Heartbeat job running at {context.now.isoformat()}")
    return {"executed_at": context.now.isoformat()}


def register_all_jobs(runner: JobRunner, config: Settings = settings) -> None:
    """
    Define every background job on the runner.

    The heartbeat job is only defined when SCHEDULER_HEARTBEAT_ENABLED is set.
    """
    logger.info("Registering background jobs...")

    register_quiz_jobs(runner)
    register_task_jobs(runner)
    register_worker_jobs(runner)

    if config.scheduler_heartbeat_enabled:
        runner.define(JOB_ID_HEARTBEAT, heartbeat, every="every 1 minute")
        logger.info(f"Registered job: {JOB_ID_HEARTBEAT} (every 1 minute)")

    logger.info(f"Background jobs registered: {runner.job_names}")


def build_runner(
    config: Settings = settings,
    session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
) -> JobRunner:
    """Create a job runner with all jobs defined, ready to start."""
    store = JobStore(session_maker, batch_size=config.scheduler_due_batch_size)
    runner = JobRunner(
        store,
        session_maker,
        poll_interval=timedelta(seconds=config.scheduler_poll_interval_seconds),
        lock_ttl=timedelta(seconds=config.scheduler_lock_ttl_seconds),
        handler_timeout=timedelta(seconds=config.scheduler_handler_timeout_seconds),
    )
    register_all_jobs(runner, config)
    return runner
