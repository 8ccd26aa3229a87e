"""
Worker Repository

Database operations used by the worker reminder job.

Claim functions are conditional UPDATEs: they return False when another run
already handled the row, which keeps the job from notifying twice.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Worker, WorkerGoal, WorkerReminder


async def get_due_reminders(
    db: AsyncSession,
    now: datetime,
    limit: int = 500,
) -> list[tuple[WorkerReminder, Worker]]:
    """Due reminders that are neither dismissed nor sent, with their worker."""
    result = await db.execute(
        select(WorkerReminder, Worker)
        .join(Worker, Worker.id == WorkerReminder.worker_id)
        .where(
            WorkerReminder.is_dismissed == False,  # noqa: E712
            WorkerReminder.is_sent == False,  # noqa: E712
            WorkerReminder.due_date <= now,
        )
        .order_by(WorkerReminder.due_date)
        .limit(limit)
    )
    return [(reminder, worker) for reminder, worker in result.all()]


async def claim_one_off_reminder(db: AsyncSession, reminder_id: UUID, sent_at: datetime) -> bool:
    """Mark a one-off reminder sent."""
    result = await db.execute(
        update(WorkerReminder)
        .where(WorkerReminder.id == reminder_id, WorkerReminder.is_sent == False)  # noqa: E712
        .values(is_sent=True, sent_at=sent_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def claim_recurring_reminder(
    db: AsyncSession,
    reminder_id: UUID,
    current_due: datetime,
    next_due: datetime,
    sent_at: datetime,
) -> bool:
    """Move a recurring reminder to its next occurrence if still at ``current_due``."""
    result = await db.execute(
        update(WorkerReminder)
        .where(WorkerReminder.id == reminder_id, WorkerReminder.due_date == current_due)
        .values(due_date=next_due, sent_at=sent_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def get_goals_nearing_deadline(
    db: AsyncSession,
    now: datetime,
    horizon: datetime,
) -> list[tuple[WorkerGoal, Worker]]:
    """Incomplete goals due between ``now`` and ``horizon`` not yet reminded."""
    result = await db.execute(
        select(WorkerGoal, Worker)
        .join(Worker, Worker.id == WorkerGoal.worker_id)
        .where(
            WorkerGoal.is_completed == False,  # noqa: E712
            WorkerGoal.reminder_sent_at.is_(None),
            WorkerGoal.target_completion_date > now,
            WorkerGoal.target_completion_date <= horizon,
        )
        .order_by(WorkerGoal.target_completion_date)
    )
    return [(goal, worker) for goal, worker in result.all()]


async def claim_goal_reminder(db: AsyncSession, goal_id: UUID, sent_at: datetime) -> bool:
    """Mark a goal's deadline reminder as sent."""
    result = await db.execute(
        update(WorkerGoal)
        .where(WorkerGoal.id == goal_id, WorkerGoal.reminder_sent_at.is_(None))
        .values(reminder_sent_at=sent_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1
