"""
Worker Models

Profiles for working-professional users, with their goals and personal
reminders.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.core.database import UTCDateTime, enum_values
from studyhub.modules.shared import BaseModel


class GoalCategory(str, enum.Enum):
    """Worker goal categories."""

    CAREER = "career"
    PERSONAL = "personal"
    FINANCIAL = "financial"
    EDUCATION = "education"
    WELLNESS = "wellness"


class ReminderCategory(str, enum.Enum):
    """Worker reminder categories."""

    PERSONAL = "personal"
    WORK = "work"
    FINANCE = "finance"
    LEARNING = "learning"


class Worker(BaseModel):
    """A worker profile, one per user."""

    __tablename__ = "workers"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    occupation: Mapped[str] = mapped_column(String(100), nullable=False, default="worker")

    motivation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    active_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    goals: Mapped[list["WorkerGoal"]] = relationship(
        "WorkerGoal", back_populates="worker", cascade="all, delete-orphan"
    )
    reminders: Mapped[list["WorkerReminder"]] = relationship(
        "WorkerReminder", back_populates="worker", cascade="all, delete-orphan"
    )


class WorkerGoal(BaseModel):
    """
    A worker's goal with a target date.

    ``reminder_sent_at`` is set once the deadline reminder went out.
    """

    __tablename__ = "worker_goals"

    worker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workers.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[GoalCategory] = mapped_column(
        Enum(GoalCategory, name="goal_category", values_callable=enum_values),
        nullable=False,
        default=GoalCategory.CAREER,
    )
    target_completion_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    progress_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    reminder_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    worker: Mapped["Worker"] = relationship("Worker", back_populates="goals")

    __table_args__ = (Index("ix_worker_goals_target", "is_completed", "target_completion_date"),)


class WorkerReminder(BaseModel):
    """
    A personal reminder.

    One-off reminders are flagged ``is_sent`` once delivered. Recurring ones
    move ``due_date`` forward a day at a time instead.
    """

    __tablename__ = "worker_reminders"

    worker_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("workers.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    category: Mapped[ReminderCategory] = mapped_column(
        Enum(ReminderCategory, name="reminder_category", values_callable=enum_values),
        nullable=False,
        default=ReminderCategory.PERSONAL,
    )

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_dismissed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    worker: Mapped["Worker"] = relationship("Worker", back_populates="reminders")

    __table_args__ = (Index("ix_worker_reminders_pending", "is_sent", "due_date"),)
