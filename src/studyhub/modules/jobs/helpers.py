"""
Helpers for job definitions: name validation and schedule parsing.
"""

import re
from datetime import timedelta

from studyhub.modules.jobs.exceptions import InvalidJobDefinitionError

ON_DEMAND = "on-demand"

MAX_JOB_NAME_LENGTH = 100

_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
}

_INTERVAL_PATTERN = re.compile(
    r"^(?:every\s+)?(?P<count>\d+)\s*(?P<unit>second|minute|hour|day)s?$",
    re.IGNORECASE,
)

Schedule = str | timedelta | None


def validate_job_name(name: str) -> str:
    """Return the stripped job name or raise if it is unusable."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidJobDefinitionError("Job name must be a non-empty string")
    name = name.strip()
    if len(name) > MAX_JOB_NAME_LENGTH:
        raise InvalidJobDefinitionError(
            f"Job name '{name[:20]}...' exceeds {MAX_JOB_NAME_LENGTH} characters"
        )
    return name


def parse_schedule(schedule: Schedule) -> int | None:
    """
    Convert a schedule to an interval in seconds.

    Accepts:
        None or "on-demand": on-demand only, returns None
        timedelta: a positive interval
        "every 5 minutes", "30 seconds", "1 hour": a positive interval

    Raises:
        InvalidJobDefinitionError: If the schedule is malformed or not positive
    """
    if schedule is None:
        return None

    if isinstance(schedule, timedelta):
        seconds = schedule.total_seconds()
        if seconds <= 0 or seconds != int(seconds):
            raise InvalidJobDefinitionError(
                f"Interval must be a positive whole number of seconds, got {schedule}"
            )
        return int(seconds)

    if not isinstance(schedule, str):
        raise InvalidJobDefinitionError(f"Unsupported schedule type: {type(schedule).__name__}")

    text = schedule.strip()
    if text.lower() == ON_DEMAND:
        return None

    match = _INTERVAL_PATTERN.match(text)
    if not match:
        raise InvalidJobDefinitionError(
            f"Malformed schedule '{schedule}'. Use e.g. 'every 5 minutes' or '{ON_DEMAND}'"
        )

    count = int(match.group("count"))
    if count <= 0:
        raise InvalidJobDefinitionError(f"Interval must be positive, got '{schedule}'")

    return count * _UNIT_SECONDS[match.group("unit").lower()]


def describe_interval(interval_seconds: int | None) -> str:
    """Human readable form of an interval, inverse of parse_schedule."""
    if interval_seconds is None:
        return ON_DEMAND
    for unit in ("day", "hour", "minute"):
        size = _UNIT_SECONDS[unit]
        if interval_seconds % size == 0:
            count = interval_seconds // size
            return f"every {count} {unit}{'s' if count != 1 else ''}"
    return f"every {interval_seconds} second{'s' if interval_seconds != 1 else ''}"
