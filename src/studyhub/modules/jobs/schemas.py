"""
Job Trigger Schemas

Request and response models for the cron trigger and job status endpoints.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from studyhub.modules.jobs.helpers import describe_interval
from studyhub.modules.jobs.models import JobDefinition, JobOutcome, JobTrigger


class TriggerJobsRequest(BaseModel):
    """Jobs to force-run. Empty or omitted means the default cron set."""

    jobs: list[str] | None = Field(default=None, max_length=20)

    @field_validator("jobs")
    @classmethod
    def strip_names(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        names = [name.strip() for name in value if name and name.strip()]
        return names or None


class DispatchedJob(BaseModel):
    """Dispatch acknowledgment for one job."""

    job_name: str
    status: Literal["accepted", "busy"]


class TriggerJobsResponse(BaseModel):
    """Dispatch acknowledgment; says nothing about whether the jobs succeed."""

    success: bool = True
    message: str
    jobs: list[DispatchedJob]


class TriggerErrorResponse(BaseModel):
    """Error body for the trigger endpoint."""

    success: bool = False
    error: str


class JobDefinitionResponse(BaseModel):
    """Scheduling state of a job."""

    name: str
    schedule: str
    interval_seconds: int | None
    last_run_at: datetime | None
    next_run_at: datetime | None
    locked_until: datetime | None
    is_running: bool

    @classmethod
    def from_model(cls, job: JobDefinition, now: datetime) -> "JobDefinitionResponse":
        return cls(
            name=job.name,
            schedule=describe_interval(job.interval_seconds),
            interval_seconds=job.interval_seconds,
            last_run_at=job.last_run_at,
            next_run_at=job.next_run_at,
            locked_until=job.locked_until,
            is_running=job.is_locked(now),
        )


class JobListResponse(BaseModel):
    jobs: list[JobDefinitionResponse]


class JobRunResponse(BaseModel):
    """A recorded job run."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_name: str
    trigger: JobTrigger
    outcome: JobOutcome
    started_at: datetime
    finished_at: datetime
    error: str | None


class JobRunListResponse(BaseModel):
    runs: list[JobRunResponse]
