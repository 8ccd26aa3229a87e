"""
Task Repository

Database operations for student tasks and task reminders.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import StudentTask, TaskReminder


async def get_open_future_tasks(db: AsyncSession, now: datetime) -> list[StudentTask]:
    """Incomplete tasks whose due date is still ahead."""
    result = await db.execute(
        select(StudentTask).where(
            StudentTask.is_completed == False,  # noqa: E712
            StudentTask.due_date > now,
        )
    )
    return list(result.scalars().all())


async def get_reminder_times(db: AsyncSession, task_id: UUID) -> set[datetime]:
    """Times at which reminders already exist for a task."""
    result = await db.execute(select(TaskReminder.remind_at).where(TaskReminder.task_id == task_id))
    return set(result.scalars().all())


async def create_reminders(
    db: AsyncSession,
    task_id: UUID,
    planned: Iterable[tuple[datetime, str]],
) -> int:
    """
    Create reminders for a task, skipping times that already have one.

    Returns:
        Number of reminders created
    """
    existing = await get_reminder_times(db, task_id)
    new_reminders = [
        TaskReminder(task_id=task_id, remind_at=remind_at, message=message)
        for remind_at, message in planned
        if remind_at not in existing
    ]
    if not new_reminders:
        return 0

    db.add_all(new_reminders)
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent run created them first
        await db.rollback()
        return 0
    return len(new_reminders)


async def get_due_unsent_reminders(
    db: AsyncSession,
    now: datetime,
    limit: int = 500,
) -> list[tuple[TaskReminder, StudentTask]]:
    """Unsent reminders whose time has come, oldest first, with their task."""
    result = await db.execute(
        select(TaskReminder, StudentTask)
        .join(StudentTask, StudentTask.id == TaskReminder.task_id)
        .where(
            TaskReminder.is_sent == False,  # noqa: E712
            TaskReminder.remind_at <= now,
        )
        .order_by(TaskReminder.remind_at)
        .limit(limit)
    )
    return [(reminder, task) for reminder, task in result.all()]


async def mark_reminder_sent(db: AsyncSession, reminder_id: UUID, sent_at: datetime) -> bool:
    """
    Flag a reminder as handled.

    Returns:
        False if another run flagged it first
    """
    result = await db.execute(
        update(TaskReminder)
        .where(TaskReminder.id == reminder_id, TaskReminder.is_sent == False)  # noqa: E712
        .values(is_sent=True, sent_at=sent_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1
