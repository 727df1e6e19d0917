"""Pieces shared by the Resource and Test action engines.

Public API (the "studs"):
    ErrorKind: Terminal error states an engine can reach
    error_message: Human readable text for an ErrorKind
    JOB_START_GRACE_PERIOD: Default time a job may run before its agent reports a state
    JobVerdict: Start the job, wait for it, or fail
    classify_job: Map a job state to a JobVerdict
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum

from ..model.models import TaskState
from .job import JobPhase, JobState

JOB_START_GRACE_PERIOD = timedelta(minutes=5)


class ErrorKind(str, Enum):
    """Terminal error states. They are written to status, never retried."""

    JOB_START = "jobStart"
    JOB_TIMEOUT = "jobTimeout"
    JOB_FAILED = "jobFailed"
    JOB_EXITED = "jobExited"
    JOB_REMOVED = "jobRemoved"
    TASK_FAILED = "taskFailed"
    # The object has no finalizer left yet still exists.
    ZOMBIE = "zombie"
    # Test only: a Resource the Test needs failed or is missing.
    RESOURCE_FAILED = "resourceFailed"


_ERROR_MESSAGES = {
    ErrorKind.JOB_START: "Timeout before the agent started",
    ErrorKind.JOB_TIMEOUT: "Job did not complete within time limit",
    ErrorKind.JOB_FAILED: "Container exited with an error",
    ErrorKind.JOB_EXITED: "Container exited before it was done",
    ErrorKind.JOB_REMOVED: "Container was killed before it was done",
    ErrorKind.TASK_FAILED: "Task failed",
    ErrorKind.ZOMBIE: "The main finalizer has been removed but the object still exists",
    ErrorKind.RESOURCE_FAILED: "A required resource failed",
}


def error_message(kind: ErrorKind) -> str:
    return _ERROR_MESSAGES[kind]


class JobVerdict(str, Enum):
    """What an engine should do about its agent job."""

    START = "start"
    WAIT = "wait"
    ERROR = "error"


def classify_job(
    job: JobState,
    task_state: TaskState,
    timeout: timedelta | None,
    grace_period: timedelta = JOB_START_GRACE_PERIOD,
) -> tuple[JobVerdict, ErrorKind | None]:
    """Decide what to do about the job of a task that is not done yet.

    Args:
        job: State of the agent job
        task_state: The task state the agent reported, UNKNOWN or RUNNING
        timeout: The agent's timeout, None for no limit
        grace_period: How long a running job may stay silent

    Returns:
        The verdict, with the error kind when the verdict is ERROR
    """
    running = task_state == TaskState.RUNNING
    if job.phase == JobPhase.NONE:
        if running:
            return JobVerdict.ERROR, ErrorKind.JOB_REMOVED
        return JobVerdict.START, None
    if job.phase == JobPhase.FAILED:
        return JobVerdict.ERROR, ErrorKind.JOB_FAILED
    if job.phase == JobPhase.EXITED:
        return JobVerdict.ERROR, ErrorKind.JOB_EXITED
    if job.phase == JobPhase.RUNNING and job.elapsed is not None:
        if timeout is not None and job.elapsed > timeout:
            return JobVerdict.ERROR, ErrorKind.JOB_TIMEOUT
        if task_state == TaskState.UNKNOWN and job.elapsed >= grace_period:
            return JobVerdict.ERROR, ErrorKind.JOB_START
    return JobVerdict.WAIT, None


__all__ = [
    "JOB_START_GRACE_PERIOD",
    "ErrorKind",
    "JobVerdict",
    "classify_job",
    "error_message",
]
