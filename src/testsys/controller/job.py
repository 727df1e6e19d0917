"""Translate raw job container counts into a logical job state.

Every agent job runs exactly one container, so its counts are expected to
sum to zero (not scheduled yet) or one.

Public API (the "studs"):
    JobPhase: The logical states of a job
    JobState: A phase plus, while running, the elapsed time
    job_state: Compute the JobState of a job, or of a missing job
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel

from ..model.exceptions import TooManyJobContainersError
from ..model.models import Job


class JobPhase(str, Enum):
    # No job object exists.
    NONE = "none"
    # The job exists but has no container counts yet.
    UNKNOWN = "unknown"
    RUNNING = "running"
    FAILED = "failed"
    # The container succeeded, which for an agent means it exited.
    EXITED = "exited"


class JobState(BaseModel):
    phase: JobPhase
    # Only set for RUNNING jobs that have a start time.
    elapsed: timedelta | None = None

    class Config:
        frozen = True

    @property
    def exists(self) -> bool:
        return self.phase != JobPhase.NONE


JOB_NONE = JobState(phase=JobPhase.NONE)
JOB_UNKNOWN = JobState(phase=JobPhase.UNKNOWN)


def job_state(job: Job | None, now: datetime | None = None) -> JobState:
    """Classify a job by its container counts.

    Args:
        job: The job, or None if it does not exist
        now: Reference time for the elapsed duration. Defaults to the current UTC time

    Returns:
        The job's state

    Raises:
        TooManyJobContainersError: If the counts describe more than one container
    """
    if job is None:
        return JOB_NONE
    status = job.status
    if status is None:
        return JOB_UNKNOWN

    total = status.active + status.succeeded + status.failed
    if total == 0:
        return JOB_UNKNOWN
    if total != 1:
        raise TooManyJobContainersError(job.name, status.active, status.succeeded, status.failed)

    if status.active == 1:
        elapsed = None
        if status.start_time is not None:
            elapsed = (now or datetime.now(timezone.utc)) - status.start_time
        return JobState(phase=JobPhase.RUNNING, elapsed=elapsed)
    if status.succeeded == 1:
        return JobState(phase=JobPhase.EXITED)
    return JobState(phase=JobPhase.FAILED)


__all__ = ["JOB_NONE", "JOB_UNKNOWN", "JobPhase", "JobState", "job_state"]
