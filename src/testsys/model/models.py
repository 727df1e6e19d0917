"""TestSys object models.

`Resource` and `Test` objects with their specs and statuses, plus the small
enumerations the controller reasons about. Field names are snake_case in
Python and camelCase when serialized, matching the manifests users write.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from .duration import parse_duration
from .finalizers import Finalizer, has_finalizer

_SECRET_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class TaskState(str, Enum):
    """The state an agent declares about its task."""

    UNKNOWN = "unknown"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class DestructionPolicy(str, Enum):
    """Whether and when the controller destroys a resource."""

    # Destroy when the object is marked for deletion.
    ON_DELETION = "onDeletion"
    # Never destroy, even when the object is deleted.
    NEVER = "never"
    # Destroy once every test using the resource has passed.
    ON_TEST_SUCCESS = "onTestSuccess"
    # Destroy once every test using the resource has finished.
    ON_TEST_COMPLETION = "onTestCompletion"


class ErrorResources(str, Enum):
    """Whether a failed agent task left resources behind."""

    ORPHANED = "orphaned"
    REMAINING = "remaining"
    CLEAR = "clear"
    UNKNOWN = "unknown"

    @property
    def description(self) -> str:
        return _ERROR_RESOURCES_DESCRIPTIONS[self]

    @property
    def requires_destruction(self) -> bool:
        """Whether the controller must still run a destruction job."""
        return self in (ErrorResources.REMAINING, ErrorResources.UNKNOWN)


_ERROR_RESOURCES_DESCRIPTIONS = {
    ErrorResources.ORPHANED: "An error left resources that cannot be destroyed",
    ErrorResources.REMAINING: "An error left resources that can be destroyed",
    ErrorResources.CLEAR: "An error occurred but no resources were left behind",
    ErrorResources.UNKNOWN: "An error occurred but it is unknown if resources exist",
}


class ResourceAction(str, Enum):
    """The operation a resource agent job performs."""

    CREATE = "create"
    DESTROY = "destroy"


class CrdKind(str, Enum):
    """The two kinds of TestSys objects."""

    TEST = "Test"
    RESOURCE = "Resource"


class CrdName(BaseModel):
    """A kind-tagged object name, used as the node type of dependency graphs."""

    kind: CrdKind
    name: str

    class Config:
        frozen = True

    @classmethod
    def test(cls, name: str) -> CrdName:
        return cls(kind=CrdKind.TEST, name=name)

    @classmethod
    def resource(cls, name: str) -> CrdName:
        return cls(kind=CrdKind.RESOURCE, name=name)

    def __str__(self) -> str:
        return f"{self.kind.value} '{self.name}'"


class ObjectMeta(CamelModel):
    """Object metadata maintained by the object store."""

    name: str = Field(..., description="Unique name within the object's kind")
    labels: dict[str, str] = Field(default_factory=dict)
    # Finalizer names; use testsys.model.finalizers to change them.
    finalizers: list[str] = Field(default_factory=list)
    deletion_timestamp: datetime | None = Field(
        default=None, description="Set when deletion has been requested"
    )
    creation_timestamp: datetime | None = None


class Agent(CamelModel):
    """The agent that does the work for a Test or Resource."""

    name: str = Field(..., description="Registered agent name")
    image: str = Field(default="", description="Agent container image")
    pull_secret: str | None = None
    keep_running: bool = False
    timeout: str | None = Field(
        default=None, description="Maximum run time, e.g. '1h30m' or '5400'"
    )
    configuration: dict[str, Any] | None = Field(
        default=None, description="Agent-defined configuration, may contain templates"
    )
    secrets: dict[str, str] | None = Field(
        default=None, description="Map of secret type to secret name"
    )
    capabilities: list[str] | None = None
    privileged: bool | None = None

    @field_validator("secrets")
    @classmethod
    def validate_secret_names(cls, v: dict[str, str] | None) -> dict[str, str] | None:
        """Secret names may be used as file names."""
        if v is None:
            return v
        for secret_name in v.values():
            if not _SECRET_NAME_PATTERN.match(secret_name):
                raise ValueError(
                    f"Invalid secret name {secret_name!r}: only ascii alphanumerics, "
                    "underscores and dashes are allowed"
                )
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str | None) -> str | None:
        if v is not None:
            parse_duration(v)
        return v

    def secret_names(self) -> set[str]:
        return set((self.secrets or {}).values())

    def timeout_duration(self) -> timedelta | None:
        """The parsed timeout, None when the agent may run forever."""
        return parse_duration(self.timeout) if self.timeout is not None else None


class ResourceError(CamelModel):
    """An error reported for a resource creation or destruction."""

    message: str
    error_resources: ErrorResources = ErrorResources.UNKNOWN

    def __str__(self) -> str:
        return (
            f"{self.error_resources.value} resources error: "
            f"{self.error_resources.description}: {self.message}"
        )


class ResourceAgentState(CamelModel):
    task_state: TaskState = TaskState.UNKNOWN
    error: ResourceError | None = None


class ResourceSpec(CamelModel):
    depends_on: list[str] = Field(
        default_factory=list, description="Resources that must be created first"
    )
    conflicts_with: list[str] = Field(
        default_factory=list, description="Resources that must be deleted first"
    )
    agent: Agent
    destruction_policy: DestructionPolicy = DestructionPolicy.ON_DELETION

    @field_validator("depends_on", "conflicts_with", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("destruction_policy", mode="before")
    @classmethod
    def null_to_default(cls, v: Any) -> Any:
        return DestructionPolicy.ON_DELETION if v is None else v


class ResourceStatus(CamelModel):
    creation: ResourceAgentState = Field(default_factory=ResourceAgentState)
    destruction: ResourceAgentState = Field(default_factory=ResourceAgentState)
    agent_info: dict[str, Any] | None = Field(
        default=None, description="Open content the agent uses to store state"
    )
    created_resource: dict[str, Any] | None = Field(
        default=None, description="Output published by the agent on creation success"
    )


class Resource(CamelModel):
    """A piece of test infrastructure, e.g. a cluster or a set of instances."""

    kind: Literal["Resource"] = "Resource"
    metadata: ObjectMeta
    spec: ResourceSpec
    status: ResourceStatus | None = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def crd_name(self) -> CrdName:
        return CrdName.resource(self.name)

    @property
    def created_resource(self) -> dict[str, Any] | None:
        return self.status.created_resource if self.status else None

    def agent_state(self, action: ResourceAction) -> ResourceAgentState:
        if self.status is None:
            return ResourceAgentState()
        if action == ResourceAction.CREATE:
            return self.status.creation
        return self.status.destruction

    def task_state(self, action: ResourceAction) -> TaskState:
        return self.agent_state(action).task_state

    def error(self, action: ResourceAction) -> ResourceError | None:
        return self.agent_state(action).error

    @property
    def creation_task_state(self) -> TaskState:
        return self.task_state(ResourceAction.CREATE)

    @property
    def destruction_task_state(self) -> TaskState:
        return self.task_state(ResourceAction.DESTROY)

    @property
    def creation_error(self) -> ResourceError | None:
        return self.error(ResourceAction.CREATE)

    def job_name(self, action: ResourceAction) -> str:
        suffix = "creation" if action == ResourceAction.CREATE else "destruction"
        return f"{self.name}-{suffix}"


class Outcome(str, Enum):
    """The outcome of a single test run, reported by the test agent."""

    PASS = "pass"
    FAIL = "fail"
    TIMEOUT = "timeout"
    IN_PROGRESS = "inProgress"
    UNKNOWN = "unknown"


class TestResults(CamelModel):
    __test__ = False

    outcome: Outcome = Outcome.UNKNOWN
    num_passed: int = 0
    num_failed: int = 0
    num_skipped: int = 0
    other_info: str | None = None

    @property
    def total(self) -> int:
        """Every test counted, whether passed, failed or skipped."""
        return self.num_passed + self.num_failed + self.num_skipped


class AgentStatus(CamelModel):
    task_state: TaskState = TaskState.UNKNOWN
    # Only meaningful when task_state is ERROR.
    error: str | None = None
    results: list[TestResults] = Field(default_factory=list)
    info: dict[str, Any] | None = Field(
        default=None, description="Open content the test agent uses to store state"
    )


class ControllerStatus(CamelModel):
    resource_error: str | None = None


class TestStatus(CamelModel):
    __test__ = False

    controller: ControllerStatus = Field(default_factory=ControllerStatus)
    agent: AgentStatus = Field(default_factory=AgentStatus)


class TestSpec(CamelModel):
    __test__ = False

    resources: list[str] = Field(default_factory=list, description="Resources the test uses")
    depends_on: list[str] = Field(
        default_factory=list, description="Tests that must complete before this one runs"
    )
    retries: int | None = Field(default=None, ge=0, description="Reruns allowed after a failure")
    agent: Agent

    @field_validator("resources", "depends_on", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class TestUserState(str, Enum):
    """A summary of a test's state for people, derived from the object."""

    __test__ = False

    UNKNOWN = "unknown"
    STARTING = "starting"
    RUNNING = "running"
    NO_TESTS = "noTests"
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"
    RESOURCE_ERROR = "resourceError"
    DELETING = "deleting"


class Test(CamelModel):
    """A workload that consumes resources and reports results."""

    __test__ = False

    kind: Literal["Test"] = "Test"
    metadata: ObjectMeta
    spec: TestSpec
    status: TestStatus | None = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def crd_name(self) -> CrdName:
        return CrdName.test(self.name)

    @property
    def agent_status(self) -> AgentStatus:
        return self.status.agent if self.status else AgentStatus()

    @property
    def resource_error(self) -> str | None:
        return self.status.controller.resource_error if self.status else None

    @property
    def job_name(self) -> str:
        return self.name

    def user_state(self) -> TestUserState:
        agent_status = self.agent_status
        if (
            self.metadata.deletion_timestamp is not None
            and agent_status.task_state != TaskState.UNKNOWN
        ):
            return TestUserState.DELETING
        if self.resource_error is not None:
            return TestUserState.RESOURCE_ERROR

        if agent_status.task_state == TaskState.UNKNOWN:
            if has_finalizer(self, Finalizer.MAIN):
                return TestUserState.STARTING
            return TestUserState.UNKNOWN
        if agent_status.task_state == TaskState.RUNNING:
            return TestUserState.RUNNING
        if agent_status.task_state == TaskState.ERROR:
            return TestUserState.ERROR

        if not agent_status.results:
            return TestUserState.NO_TESTS
        last = agent_status.results[-1]
        if last.outcome == Outcome.PASS:
            return TestUserState.PASSED
        if last.outcome in (Outcome.FAIL, Outcome.TIMEOUT):
            return TestUserState.FAILED
        if last.total == 0:
            return TestUserState.NO_TESTS
        if last.num_failed == 0:
            return TestUserState.PASSED
        return TestUserState.FAILED


class JobStatus(CamelModel):
    """Container counts of a job running one agent container."""

    active: int = 0
    succeeded: int = 0
    failed: int = 0
    start_time: datetime | None = None


class JobSpec(CamelModel):
    agent: Agent
    owner: CrdName
    action: ResourceAction | None = Field(
        default=None, description="Set for resource agent jobs"
    )


class Job(CamelModel):
    """A job running an agent on behalf of a Test or Resource."""

    kind: Literal["Job"] = "Job"
    metadata: ObjectMeta
    spec: JobSpec
    status: JobStatus | None = None

    @property
    def name(self) -> str:
        return self.metadata.name


# Either kind of TestSys object.
Crd = Resource | Test


def crd_from_dict(data: dict[str, Any]) -> Crd:
    """Build a Test or Resource from a manifest or stored document.

    Raises:
        ValueError: If `kind` is missing or unknown
    """
    kind = data.get("kind")
    if kind == CrdKind.RESOURCE.value:
        return Resource.model_validate(data)
    if kind == CrdKind.TEST.value:
        return Test.model_validate(data)
    raise ValueError(f"Unknown object kind: {kind!r}")


__all__ = [
    "Agent",
    "AgentStatus",
    "ControllerStatus",
    "Crd",
    "CrdKind",
    "CrdName",
    "DestructionPolicy",
    "ErrorResources",
    "Job",
    "JobSpec",
    "JobStatus",
    "ObjectMeta",
    "Outcome",
    "Resource",
    "ResourceAction",
    "ResourceAgentState",
    "ResourceError",
    "ResourceSpec",
    "ResourceStatus",
    "TaskState",
    "Test",
    "TestResults",
    "TestSpec",
    "TestStatus",
    "TestUserState",
    "crd_from_dict",
]
