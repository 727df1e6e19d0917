"""The Resource action engine.

Given everything the controller observed about a Resource, decide the one
next thing to do. The engine is a pure function of a `ResourceSnapshot`; it
never touches the store, never sleeps and never mutates its input. Waiting
is expressed by returning a wait step, after which the reconciler requeues.

A Resource moves through two branches. Creation brings it from a fresh
object to a created resource guarded by the `RESOURCE` finalizer.
Destruction runs when deletion was requested or the destruction policy says
the resource is no longer needed, and removes guards in order until the
object can disappear.

Public API (the "studs"):
    ResourceSnapshot: Observed state of a Resource and its neighbours
    CreationStep / DestructionStep: The steps of each branch
    CreationAction / DestructionAction: A step plus its details
    check_gate: The dependency/conflict gate
    decide_resource_action: Decide the next action for a Resource
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from ..model.finalizers import Finalizer, has_finalizer, has_finalizers
from ..model.models import DestructionPolicy, Resource, TaskState, Test
from .action import JOB_START_GRACE_PERIOD, ErrorKind, JobVerdict, classify_job
from .job import JOB_NONE, JobState
from .policy import is_policy_eligible

_logger = logging.getLogger(__name__)


class CreationStep(str, Enum):
    INITIALIZE = "initialize"
    ADD_MAIN_FINALIZER = "addMainFinalizer"
    ADD_JOB_FINALIZER = "addJobFinalizer"
    START_JOB = "startJob"
    WAIT_FOR_DEPENDENCY = "waitForDependency"
    WAIT_FOR_CONFLICT = "waitForConflict"
    WAIT_FOR_CREATION = "waitForCreation"
    ADD_RESOURCE_FINALIZER = "addResourceFinalizer"
    DONE = "done"
    ERROR = "error"


class DestructionStep(str, Enum):
    START_RESOURCE_DELETION = "startResourceDeletion"
    REMOVE_CREATION_JOB = "removeCreationJob"
    REMOVE_CREATION_JOB_FINALIZER = "removeCreationJobFinalizer"
    START_DESTRUCTION_JOB = "startDestructionJob"
    WAIT = "wait"
    REMOVE_DESTRUCTION_JOB = "removeDestructionJob"
    REMOVE_RESOURCE_FINALIZER = "removeResourceFinalizer"
    REMOVE_MAIN_FINALIZER = "removeMainFinalizer"
    ERROR = "error"


class CreationAction(BaseModel):
    branch: Literal["creation"] = "creation"
    step: CreationStep
    # The blocking Resource for WAIT_FOR_DEPENDENCY and WAIT_FOR_CONFLICT.
    target: str | None = None
    error: ErrorKind | None = None

    class Config:
        frozen = True

    def __str__(self) -> str:
        return _describe(self.branch, self.step.value, self.target, self.error)


class DestructionAction(BaseModel):
    branch: Literal["destruction"] = "destruction"
    step: DestructionStep
    error: ErrorKind | None = None

    class Config:
        frozen = True

    def __str__(self) -> str:
        return _describe(self.branch, self.step.value, None, self.error)


def _describe(branch: str, step: str, target: str | None, error: ErrorKind | None) -> str:
    detail = target or (error.value if error else None)
    return f"{branch}:{step}({detail})" if detail else f"{branch}:{step}"


Action = CreationAction | DestructionAction


class ResourceSnapshot(BaseModel):
    """Everything the engine needs to decide on one Resource.

    Attributes:
        resource: The Resource being reconciled
        creation_job: State of its creation job
        destruction_job: State of its destruction job
        resources: Every live Resource by name, including this one
        tests: Every live Test
        job_start_grace: How long a job may run before its agent reports a state
    """

    resource: Resource
    creation_job: JobState = JOB_NONE
    destruction_job: JobState = JOB_NONE
    resources: dict[str, Resource] = Field(default_factory=dict)
    tests: list[Test] = Field(default_factory=list)
    job_start_grace: timedelta = JOB_START_GRACE_PERIOD


def _creation(step: CreationStep, **kwargs) -> CreationAction:
    return CreationAction(step=step, **kwargs)


def _destruction(step: DestructionStep, **kwargs) -> DestructionAction:
    return DestructionAction(step=step, **kwargs)


def check_gate(resource: Resource, resources: Mapping[str, Resource]) -> CreationAction | None:
    """Check a Resource's dependencies, then its conflicts.

    Returns:
        A wait action naming the first blocker, or None if nothing blocks
    """
    for name in resource.spec.depends_on:
        dependency = resources.get(name)
        if dependency is None or dependency.created_resource is None:
            return _creation(CreationStep.WAIT_FOR_DEPENDENCY, target=name)
    for name in resource.spec.conflicts_with:
        if name in resources:
            return _creation(CreationStep.WAIT_FOR_CONFLICT, target=name)
    return None


def decide_resource_action(snapshot: ResourceSnapshot) -> Action:
    """Decide the next action for the snapshot's Resource.

    Raises:
        DurationParseError: If the agent timeout is malformed
    """
    resource = snapshot.resource
    if resource.metadata.deletion_timestamp is not None or is_policy_eligible(
        resource, snapshot.tests, snapshot.resources.values()
    ):
        action: Action = _destruction_action(snapshot)
    else:
        action = _creation_action(snapshot)
    _logger.debug("Action for resource '%s': %s", resource.name, action)
    return action


# -- Creation --------------------------------------------------------------


def _creation_action(snapshot: ResourceSnapshot) -> CreationAction:
    resource = snapshot.resource
    if resource.status is None:
        return _creation(CreationStep.INITIALIZE)
    if not has_finalizers(resource):
        return _creation(CreationStep.ADD_MAIN_FINALIZER)

    blocked = check_gate(resource, snapshot.resources)
    if blocked is not None:
        return blocked

    task_state = resource.creation_task_state
    if task_state in (TaskState.UNKNOWN, TaskState.RUNNING):
        return _creation_not_done(snapshot, task_state)
    if task_state == TaskState.COMPLETED:
        if has_finalizer(resource, Finalizer.RESOURCE):
            return _creation(CreationStep.DONE)
        return _creation(CreationStep.ADD_RESOURCE_FINALIZER)
    return _creation(CreationStep.ERROR, error=ErrorKind.TASK_FAILED)


def _creation_not_done(snapshot: ResourceSnapshot, task_state: TaskState) -> CreationAction:
    resource = snapshot.resource
    if task_state != TaskState.RUNNING and not has_finalizer(resource, Finalizer.CREATION_JOB):
        return _creation(CreationStep.ADD_JOB_FINALIZER)

    verdict, error = classify_job(
        snapshot.creation_job,
        task_state,
        resource.spec.agent.timeout_duration(),
        snapshot.job_start_grace,
    )
    if verdict == JobVerdict.START:
        return _creation(CreationStep.START_JOB)
    if verdict == JobVerdict.ERROR:
        return _creation(CreationStep.ERROR, error=error)
    return _creation(CreationStep.WAIT_FOR_CREATION)


# -- Destruction -----------------------------------------------------------


def _needs_destruction_after_error(resource: Resource) -> bool:
    """A failed creation may have left resources that must still be destroyed."""
    error = resource.creation_error
    return (
        resource.spec.destruction_policy != DestructionPolicy.NEVER
        and error is not None
        and error.error_resources.requires_destruction
        and resource.destruction_task_state != TaskState.COMPLETED
    )


def _destruction_action(snapshot: ResourceSnapshot) -> DestructionAction:
    resource = snapshot.resource
    if resource.metadata.deletion_timestamp is None:
        return _destruction(DestructionStep.START_RESOURCE_DELETION)

    if snapshot.creation_job.exists:
        return _destruction(DestructionStep.REMOVE_CREATION_JOB)
    if has_finalizer(resource, Finalizer.CREATION_JOB):
        return _destruction(DestructionStep.REMOVE_CREATION_JOB_FINALIZER)

    if has_finalizer(resource, Finalizer.RESOURCE) or _needs_destruction_after_error(resource):
        return _destruction_with_resources(snapshot)
    return _destruction_without_resources(snapshot)


def _destruction_with_resources(snapshot: ResourceSnapshot) -> DestructionAction:
    resource = snapshot.resource
    if resource.spec.destruction_policy == DestructionPolicy.NEVER:
        return _destruction(DestructionStep.REMOVE_RESOURCE_FINALIZER)

    task_state = resource.destruction_task_state
    if task_state in (TaskState.UNKNOWN, TaskState.RUNNING):
        verdict, error = classify_job(
            snapshot.destruction_job,
            task_state,
            resource.spec.agent.timeout_duration(),
            snapshot.job_start_grace,
        )
        if verdict == JobVerdict.START:
            return _destruction(DestructionStep.START_DESTRUCTION_JOB)
        if verdict == JobVerdict.ERROR:
            return _destruction(DestructionStep.ERROR, error=error)
        return _destruction(DestructionStep.WAIT)
    if task_state == TaskState.COMPLETED:
        if snapshot.destruction_job.exists:
            return _destruction(DestructionStep.REMOVE_DESTRUCTION_JOB)
        return _destruction(DestructionStep.REMOVE_RESOURCE_FINALIZER)
    return _destruction(DestructionStep.ERROR, error=ErrorKind.TASK_FAILED)


def _destruction_without_resources(snapshot: ResourceSnapshot) -> DestructionAction:
    if snapshot.destruction_job.exists:
        return _destruction(DestructionStep.REMOVE_DESTRUCTION_JOB)
    if has_finalizer(snapshot.resource, Finalizer.MAIN):
        return _destruction(DestructionStep.REMOVE_MAIN_FINALIZER)
    return _destruction(DestructionStep.ERROR, error=ErrorKind.ZOMBIE)


__all__ = [
    "Action",
    "CreationAction",
    "CreationStep",
    "DestructionAction",
    "DestructionStep",
    "ResourceSnapshot",
    "check_gate",
    "decide_resource_action",
]
