"""
Background Job Models

Persistent job definitions (scheduling metadata and lock state) and the
history of job runs.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from studyhub.core.database import Base, UTCDateTime, enum_values


class JobOutcome(str, enum.Enum):
    """Outcome of a single job run."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class JobTrigger(str, enum.Enum):
    """What started a job run."""

    SCHEDULE = "schedule"
    MANUAL = "manual"


class JobDefinition(Base):
    """
    A schedulable job.

    ``interval_seconds`` is NULL for on-demand-only jobs. A lock is held while
    ``locked_until`` lies in the future; an expired lock is free to take.
    """

    __tablename__ = "scheduled_jobs"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    interval_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    last_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (Index("ix_scheduled_jobs_next_run_at", "next_run_at"),)

    @property
    def is_recurring(self) -> bool:
        return self.interval_seconds is not None

    def is_locked(self, now: datetime) -> bool:
        """Whether an unexpired lock is held at ``now``."""
        return self.locked_until is not None and self.locked_until > now

    def __repr__(self) -> str:
        return f"<JobDefinition(name={self.name}, interval={self.interval_seconds}s)>"


class JobRun(Base):
    """Record of a finished job run."""

    __tablename__ = "job_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False)

    trigger: Mapped[JobTrigger] = mapped_column(
        Enum(JobTrigger, name="job_trigger", values_callable=enum_values),
        nullable=False,
        default=JobTrigger.SCHEDULE,
    )
    outcome: Mapped[JobOutcome] = mapped_column(
        Enum(JobOutcome, name="job_outcome", values_callable=enum_values), nullable=False
    )

    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    finished_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_job_runs_job_name_started_at", "job_name", "started_at"),)
