"""
Background Worker Process

Runs the job runner outside the API process.

Usage:
    python -m studyhub.worker                          # poll until SIGINT/SIGTERM
    python -m studyhub.worker --run-now task_reminder  # run once and exit

Exit codes:
    0 - clean shutdown, or every --run-now job succeeded
    1 - database unreachable at startup, or a --run-now job failed
"""

import argparse
import asyncio
import logging
import signal
import sys

from studyhub.core.config import settings
from studyhub.core.database import close_db, init_db
from studyhub.core.logging import configure_logging
from studyhub.modules.jobs.exceptions import JobError
from studyhub.modules.jobs.models import JobOutcome
from studyhub.modules.jobs.registry import build_runner
from studyhub.modules.jobs.runner import JobRunner

logger = logging.getLogger("studyhub.worker")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="studyhub.worker",
        description="Run StudyHub background jobs.",
    )
    parser.add_argument(
        "--run-now",
        metavar="NAME",
        action="append",
        default=[],
        help="Run the named job once and exit (repeatable)",
    )
    return parser.parse_args(argv)


async def run_once(runner: JobRunner, names: list[str]) -> int:
    """Run each named job immediately. Returns the process exit code."""
    await runner.register_all()

    exit_code = 0
    for name in names:
        try:
            result = await runner.run_now(name)
        except JobError as e:
            logger.error(e.message)
            exit_code = 1
            continue

        logger.info(f"Job {name}: {result.outcome.value}")
        if result.outcome == JobOutcome.FAILURE:
            exit_code = 1
        elif result.outcome == JobOutcome.SKIPPED:
            logger.warning(f"Job {name} is already running elsewhere")

    return exit_code


async def run_forever(runner: JobRunner) -> None:
    """Poll for due jobs until the process is asked to stop."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await runner.start()
    logger.info("Worker running, press Ctrl+C to stop")
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutdown signal received")
        await runner.stop(timeout=settings.scheduler_handler_timeout_seconds)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()

    try:
        await init_db()
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        return 1
    logger.info("[OK] Database connected")

    try:
        runner = build_runner()
        if args.run_now:
            return await run_once(runner, args.run_now)
        await run_forever(runner)
        return 0
    except JobError as e:
        logger.error(f"Worker stopped: {e.message}")
        return 1
    finally:
        await close_db()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
