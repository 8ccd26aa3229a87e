"""
Cron Trigger Router

Endpoints used by external cron schedulers and operators:
- POST /cron/run-jobs - Force-run a set of jobs now
- GET /cron/jobs - List job definitions with schedule and lock state
- GET /cron/runs - List recent job runs

The trigger endpoint acknowledges dispatch only. A 200 means each job was
either handed to the runner ("accepted") or is already running ("busy");
whether an accepted job succeeds is visible through /cron/runs and the logs.

Security:
- Shared bearer secret (CRON_SECRET) on every endpoint
- Rate limiting on the trigger endpoint
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from studyhub.core.auth import verify_cron_secret
from studyhub.core.rate_limit import TriggerRateLimit
from studyhub.modules.jobs.exceptions import StoreUnavailableError, UnknownJobError
from studyhub.modules.jobs.registry import DEFAULT_TRIGGER_JOBS
from studyhub.modules.jobs.runner import JobRunner
from studyhub.modules.jobs.schemas import (
    DispatchedJob,
    JobDefinitionResponse,
    JobListResponse,
    JobRunListResponse,
    JobRunResponse,
    TriggerErrorResponse,
    TriggerJobsRequest,
    TriggerJobsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


def get_job_runner(request: Request) -> JobRunner:
    """Dependency returning the runner created in the application lifespan."""
    runner: JobRunner | None = getattr(request.app.state, "job_runner", None)
    if runner is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"success": False, "error": "Job runner is not initialized"},
        )
    return runner


@router.post(
    "/run-jobs",
    response_model=TriggerJobsResponse,
    summary="Force-run background jobs",
    dependencies=[Depends(TriggerRateLimit())],
    responses={
        400: {"description": "Unknown job name", "model": TriggerErrorResponse},
        500: {"description": "Dispatch failed", "model": TriggerErrorResponse},
    },
)
async def run_jobs(
    payload: TriggerJobsRequest | None = None,
    runner: JobRunner = Depends(get_job_runner),
):
    """
    Dispatch jobs for immediate execution.

    With no body (or an empty job list) the default cron set runs:
    quiz auto-submit, task reminders and worker reminders.
    """
    names = (payload.jobs if payload else None) or list(DEFAULT_TRIGGER_JOBS)

    try:
        acks = await runner.dispatch(names)
    except UnknownJobError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": e.message},
        )
    except StoreUnavailableError as e:
        logger.error(f"Cron execution error: {e.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": e.message},
        )

    accepted = sum(1 for ack in acks if ack.status == "accepted")
    logger.info(f"Cron trigger dispatched {accepted}/{len(acks)} jobs: {names}")

    return TriggerJobsResponse(
        success=True,
        message=f"Jobs dispatched ({accepted} accepted, {len(acks) - accepted} busy)",
        jobs=[DispatchedJob(job_name=ack.job_name, status=ack.status) for ack in acks],
    )


@router.get("/jobs", response_model=JobListResponse, summary="List background jobs")
async def list_jobs(runner: JobRunner = Depends(get_job_runner)):
    """Job definitions with their schedule, last run and lock state."""
    try:
        jobs = await runner.store.list_definitions()
    except StoreUnavailableError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": e.message},
        )

    now = datetime.now(UTC)
    return JobListResponse(jobs=[JobDefinitionResponse.from_model(job, now) for job in jobs])


@router.get("/runs", response_model=JobRunListResponse, summary="List recent job runs")
async def list_runs(
    job_name: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=500),
    runner: JobRunner = Depends(get_job_runner),
):
    """Most recent runs first, optionally filtered by job name."""
    try:
        runs = await runner.store.recent_runs(limit=limit, job_name=job_name)
    except StoreUnavailableError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": e.message},
        )

    return JobRunListResponse(runs=[JobRunResponse.model_validate(run) for run in runs])
