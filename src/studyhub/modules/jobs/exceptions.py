"""
Background Job Errors

Error taxonomy for the job store and runner:

- InvalidJobDefinitionError: malformed job registration (fatal at startup)
- UnknownJobError: a trigger named a job that was never defined
- LockContention: another run holds the job's lock (expected, never fatal)
- HandlerExecutionError: wraps any failure raised inside a handler
- StoreUnavailableError: the job store's database cannot be reached
"""


class JobError(Exception):
    """Base exception for background job errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 500):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InvalidJobDefinitionError(JobError):
    """Raised when a job name, handler or schedule is malformed."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="INVALID_JOB_DEFINITION",
            status_code=400,
        )


class UnknownJobError(InvalidJobDefinitionError):
    """Raised when a job name is not in the runner's registry."""

    def __init__(self, job_name: str, available: list[str] | None = None):
        self.job_name = job_name
        message = f"Job '{job_name}' is not registered"
        if available is not None:
            message += f". Available jobs: {sorted(available)}"
        super().__init__(message)
        self.error_code = "UNKNOWN_JOB"


class LockContention(JobError):
    """Raised when a job's lock is held by another run."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(
            message=f"Job '{job_name}' is already running",
            error_code="JOB_BUSY",
            status_code=409,
        )


class HandlerExecutionError(JobError):
    """Wraps an exception raised by a job handler."""

    def __init__(self, job_name: str, cause: BaseException):
        self.job_name = job_name
        self.cause = cause
        super().__init__(
            message=f"Job '{job_name}' failed: {type(cause).__name__}: {cause}",
            error_code="JOB_FAILED",
            status_code=500,
        )


class StoreUnavailableError(JobError):
    """Raised when the job store's database is unreachable."""

    def __init__(self, message: str = "Job store is unavailable"):
        super().__init__(
            message=message,
            error_code="STORE_UNAVAILABLE",
            status_code=500,
        )
