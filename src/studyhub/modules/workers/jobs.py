"""
Worker Reminder Background Job

Notifies workers about:
1. Personal reminders that have come due (one-off and daily recurring)
2. Goals whose target date is less than a day away

Each row is claimed with a conditional update before the email goes out,
so repeated runs over the same window notify at most once.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from studyhub.core.email import send_goal_deadline_reminder, send_worker_reminder
from studyhub.modules.jobs.runner import JobContext, JobRunner
from studyhub.modules.users.models import User
from studyhub.modules.users.repository import UserRepository
from studyhub.modules.workers import repository
from studyhub.modules.workers.models import WorkerGoal, WorkerReminder

logger = logging.getLogger(__name__)

JOB_ID_WORKER_REMINDER = "worker_reminder"
WORKER_REMINDER_INTERVAL = "every 5 minutes"

RECURRENCE_STEP = timedelta(days=1)
GOAL_DEADLINE_WINDOW = timedelta(hours=24)


def next_occurrence(
    due_date: datetime,
    now: datetime,
    step: timedelta = RECURRENCE_STEP,
) -> datetime:
    """First occurrence strictly after ``now``, stepping from ``due_date``."""
    if due_date > now:
        return due_date
    missed = (now - due_date) // step + 1
    return due_date + missed * step


async def _process_reminder(
    context: JobContext,
    reminder: WorkerReminder,
    recipient: User | None,
) -> dict[str, Any]:
    """Claim one due reminder and email the worker."""
    async with context.session_maker() as db:
        if reminder.is_recurring:
            next_due = next_occurrence(reminder.due_date, context.now)
            claimed = await repository.claim_recurring_reminder(
                db, reminder.id, reminder.due_date, next_due, context.now
            )
        else:
            next_due = None
            claimed = await repository.claim_one_off_reminder(db, reminder.id, context.now)

    if not claimed:
        return {"reminder_id": str(reminder.id), "status": "skipped", "reason": "already_sent"}

    if recipient is None:
        return {"reminder_id": str(reminder.id), "status": "skipped", "reason": "no_recipient"}

    email_sent = await send_worker_reminder(
        to_email=recipient.email,
        worker_name=recipient.first_name,
        reminder_title=reminder.title,
        due_date=reminder.due_date,
        category=reminder.category.value,
    )
    if not email_sent:
        logger.error(f"Failed to send worker reminder email for reminder {reminder.id}")

    return {
        "reminder_id": str(reminder.id),
        "status": "sent" if email_sent else "marked_sent_email_failed",
        "next_due": next_due.isoformat() if next_due else None,
    }


async def _process_goal(
    context: JobContext,
    goal: WorkerGoal,
    recipient: User | None,
) -> dict[str, Any]:
    """Claim one goal deadline reminder and email the worker."""
    async with context.session_maker() as db:
        claimed = await repository.claim_goal_reminder(db, goal.id, context.now)

    if not claimed:
        return {"goal_id": str(goal.id), "status": "skipped", "reason": "already_sent"}

    if recipient is None:
        return {"goal_id": str(goal.id), "status": "skipped", "reason": "no_recipient"}

    email_sent = await send_goal_deadline_reminder(
        to_email=recipient.email,
        worker_name=recipient.first_name,
        goal_title=goal.title,
        target_date=goal.target_completion_date,
        progress_percentage=goal.progress_percentage,
    )
    if not email_sent:
        logger.error(f"Failed to send goal deadline email for goal {goal.id}")

    return {
        "goal_id": str(goal.id),
        "status": "sent" if email_sent else "marked_sent_email_failed",
    }


async def send_worker_reminders(context: JobContext) -> dict[str, Any]:
    """
    Send due worker reminders and goal deadline warnings.

    Returns:
        Dict with job execution summary including:
        - executed_at: Reference time of the run
        - reminders: Per-reminder results
        - goals: Per-goal results
        - total_sent: Emails sent
        - total_errors: Rows that failed to process
    """
    now = context.now
    logger.info(f"Starting worker reminder job at {now.isoformat()}")

    results: dict[str, Any] = {
        "executed_at": now.isoformat(),
        "reminders": [],
        "goals": [],
        "total_sent": 0,
        "total_errors": 0,
    }

    async with context.session_maker() as db:
        due_reminders = await repository.get_due_reminders(db, now)
        goals = await repository.get_goals_nearing_deadline(db, now, now + GOAL_DEADLINE_WINDOW)
        user_ids = {worker.user_id for _, worker in due_reminders}
        user_ids |= {worker.user_id for _, worker in goals}
        recipients = await UserRepository.get_active_by_ids(db, user_ids)

    logger.info(
        f"Found {len(due_reminders)} worker reminders due and "
        f"{len(goals)} goals nearing their deadline"
    )

    for reminder, worker in due_reminders:
        try:
            result = await _process_reminder(context, reminder, recipients.get(worker.user_id))
        except Exception as e:
            logger.error(f"Error processing worker reminder {reminder.id}: {e}", exc_info=True)
            result = {"reminder_id": str(reminder.id), "status": "error", "error": str(e)}
            results["total_errors"] += 1
        results["reminders"].append(result)
        if result["status"] == "sent":
            results["total_sent"] += 1

    for goal, worker in goals:
        try:
            result = await _process_goal(context, goal, recipients.get(worker.user_id))
        except Exception as e:
            logger.error(f"Error processing goal reminder {goal.id}: {e}", exc_info=True)
            result = {"goal_id": str(goal.id), "status": "error", "error": str(e)}
            results["total_errors"] += 1
        results["goals"].append(result)
        if result["status"] == "sent":
            results["total_sent"] += 1

    logger.info(
        f"Worker reminder job completed. "
        f"Sent: {results['total_sent']}, Errors: {results['total_errors']}"
    )
    return results


def register_worker_jobs(runner: JobRunner) -> None:
    """Define the worker reminder job on the runner."""
    runner.define(JOB_ID_WORKER_REMINDER, send_worker_reminders, every=WORKER_REMINDER_INTERVAL)
    logger.info(f"Registered job: {JOB_ID_WORKER_REMINDER} ({WORKER_REMINDER_INTERVAL})")
