"""
Task Reminder Background Job

Keeps deadline reminders scheduled for every open student task and sends the
ones whose time has come:
1. Plan reminders 6 hours and 2 hours before each future due date (plus the
   student's own reminder time, when enabled)
2. Email the student for each unsent reminder that is due

Idempotency:
- Planned reminders are unique per (task, remind_at), so re-planning is a no-op
- A reminder is claimed (is_sent = true) before its email goes out, so two
  runs over the same window never notify twice
- Reminders for completed or already-overdue tasks are claimed without sending
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from studyhub.core.email import send_task_reminder
from studyhub.modules.jobs.runner import JobContext, JobRunner
from studyhub.modules.tasks import repository
from studyhub.modules.tasks.models import StudentTask, TaskReminder
from studyhub.modules.users.models import User
from studyhub.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

JOB_ID_TASK_REMINDER = "task_reminder"
TASK_REMINDER_INTERVAL = "every 1 minute"

# Hours before the due date at which deadline reminders go out
REMINDER_OFFSETS_HOURS = (6, 2)


def plan_reminders(task: StudentTask, now: datetime) -> list[tuple[datetime, str]]:
    """
    Reminder times and messages for a task, limited to times still ahead.
    """
    planned: list[tuple[datetime, str]] = []

    for hours in REMINDER_OFFSETS_HOURS:
        remind_at = task.due_date - timedelta(hours=hours)
        if remind_at > now:
            planned.append(
                (remind_at, f'Reminder: Your task "{task.title}" is due in {hours} hours.')
            )

    if (
        task.reminder_enabled
        and task.reminder_time is not None
        and now < task.reminder_time < task.due_date
    ):
        planned.append((task.reminder_time, f'Reminder: Your task "{task.title}" is coming up.'))

    return planned


async def _schedule_reminders(context: JobContext) -> dict[str, int]:
    scheduled = 0
    errors = 0

    async with context.session_maker() as db:
        tasks = await repository.get_open_future_tasks(db, context.now)

    for task in tasks:
        planned = plan_reminders(task, context.now)
        if not planned:
            continue
        try:
            async with context.session_maker() as db:
                scheduled += await repository.create_reminders(db, task.id, planned)
        except Exception as e:
            logger.error(f"Error scheduling reminders for task {task.id}: {e}", exc_info=True)
            errors += 1

    return {"scheduled": scheduled, "errors": errors}


async def _process_reminder(
    context: JobContext,
    reminder: TaskReminder,
    task: StudentTask,
    recipient: User | None,
) -> dict[str, Any]:
    """Claim one due reminder and notify the student if it still applies."""
    async with context.session_maker() as db:
        claimed = await repository.mark_reminder_sent(db, reminder.id, context.now)

    if not claimed:
        return {"reminder_id": str(reminder.id), "status": "skipped", "reason": "already_sent"}

    if task.is_completed:
        return {"reminder_id": str(reminder.id), "status": "skipped", "reason": "task_completed"}

    if task.due_date <= context.now:
        return {"reminder_id": str(reminder.id), "status": "skipped", "reason": "task_overdue"}

    if recipient is None:
        logger.warning(f"No active student {task.student_id} for reminder {reminder.id}")
        return {"reminder_id": str(reminder.id), "status": "skipped", "reason": "no_recipient"}

    email_sent = await send_task_reminder(
        to_email=recipient.email,
        student_name=recipient.first_name,
        task_title=task.title,
        due_date=task.due_date,
        message=reminder.message,
    )
    if not email_sent:
        logger.error(f"Failed to send reminder email for task reminder {reminder.id}")

    logger.info(f"Reminder for student {task.student_id}, task {task.id}: {reminder.message}")

    return {
        "reminder_id": str(reminder.id),
        "status": "sent" if email_sent else "marked_sent_email_failed",
    }


async def send_task_reminders(context: JobContext) -> dict[str, Any]:
    """
    Schedule upcoming task reminders and send the due ones.

    Returns:
        Dict with job execution summary including:
        - executed_at: Reference time of the run
        - scheduled: Reminders newly planned
        - reminders: Per-reminder results
        - total_sent: Reminders emailed
        - total_errors: Tasks or reminders that failed to process
    """
    now = context.now
    logger.info(f"Starting task reminder job at {now.isoformat()}")

    planning = await _schedule_reminders(context)

    results: dict[str, Any] = {
        "executed_at": now.isoformat(),
        "scheduled": planning["scheduled"],
        "reminders": [],
        "total_sent": 0,
        "total_errors": planning["errors"],
    }

    async with context.session_maker() as db:
        due = await repository.get_due_unsent_reminders(db, now)
        student_ids = {task.student_id for _, task in due}
        recipients = await UserRepository.get_active_by_ids(db, student_ids)

    logger.info(f"Found {len(due)} task reminders due")

    for reminder, task in due:
        try:
            result = await _process_reminder(
                context, reminder, task, recipients.get(task.student_id)
            )
            results["reminders"].append(result)
            if result["status"] == "sent":
                results["total_sent"] += 1
        except Exception as e:
            logger.error(f"Error processing task reminder {reminder.id}: {e}", exc_info=True)
            results["reminders"].append(
                {"reminder_id": str(reminder.id), "status": "error", "error": str(e)}
            )
            results["total_errors"] += 1

    logger.info(
        f"Task reminder job completed. Scheduled: {results['scheduled']}, "
        f"Sent: {results['total_sent']}, Errors: {results['total_errors']}"
    )
    return results


def register_task_jobs(runner: JobRunner) -> None:
    """Define the task reminder job on the runner."""
    runner.define(JOB_ID_TASK_REMINDER, send_task_reminders, every=TASK_REMINDER_INTERVAL)
    logger.info(f"Registered job: {JOB_ID_TASK_REMINDER} ({TASK_REMINDER_INTERVAL})")
