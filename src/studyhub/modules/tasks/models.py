"""
Task Models

Student tasks and the reminder notifications scheduled against them.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.core.database import UTCDateTime
from studyhub.modules.shared import BaseModel


class StudentTask(BaseModel):
    """
    A task on a student's planner.

    ``reminder_time`` is an extra, student-chosen reminder honoured when
    ``reminder_enabled`` is set; deadline reminders are scheduled regardless.
    """

    __tablename__ = "student_tasks"

    student_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    reminder_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    reminders: Mapped[list["TaskReminder"]] = relationship(
        "TaskReminder", back_populates="task", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_student_tasks_student_due", "student_id", "due_date"),)


class TaskReminder(BaseModel):
    """
    A single reminder for a task.

    ``is_sent`` is the idempotency flag: the reminder job only picks up rows
    where it is false and sets it once the reminder is handled.
    """

    __tablename__ = "task_reminders"

    task_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("student_tasks.id", ondelete="CASCADE"), nullable=False
    )
    remind_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    message: Mapped[str] = mapped_column(String(300), nullable=False)

    is_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    task: Mapped["StudentTask"] = relationship("StudentTask", back_populates="reminders")

    __table_args__ = (
        UniqueConstraint("task_id", "remind_at", name="uq_task_reminders_task_remind_at"),
        Index("ix_task_reminders_pending", "is_sent", "remind_at"),
    )
