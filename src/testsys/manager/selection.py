"""Select Tests and Resources by kind, name, labels and state.

Public API (the "studs"):
    CrdState: Coarse states a selection can filter on
    SelectionParams: Filters for TestManager.list and friends
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, field_validator

from ..model.models import Crd, CrdKind, Resource, TaskState, Test, TestUserState


class CrdState(str, Enum):
    NOT_FINISHED = "not-finished"
    RUNNING = "running"
    COMPLETED = "completed"
    PASSED = "passed"
    FAILED = "failed"


_TEST_STATES: dict[CrdState, set[TestUserState]] = {
    CrdState.RUNNING: {TestUserState.RUNNING},
    CrdState.COMPLETED: {
        TestUserState.NO_TESTS,
        TestUserState.PASSED,
        TestUserState.FAILED,
        TestUserState.ERROR,
        TestUserState.RESOURCE_ERROR,
    },
    CrdState.PASSED: {TestUserState.PASSED},
    CrdState.FAILED: {TestUserState.FAILED, TestUserState.ERROR, TestUserState.RESOURCE_ERROR},
    CrdState.NOT_FINISHED: {TestUserState.RUNNING, TestUserState.STARTING, TestUserState.UNKNOWN},
}


def _test_in_state(test: Test, state: CrdState) -> bool:
    return test.user_state() in _TEST_STATES[state]


def _resource_in_state(resource: Resource, state: CrdState) -> bool:
    creation = resource.creation_task_state
    destruction = resource.destruction_task_state
    if state == CrdState.RUNNING:
        return TaskState.RUNNING in (creation, destruction)
    if state == CrdState.COMPLETED:
        return (
            creation in (TaskState.COMPLETED, TaskState.ERROR)
            and destruction != TaskState.RUNNING
        )
    if state == CrdState.NOT_FINISHED:
        return creation in (TaskState.RUNNING, TaskState.UNKNOWN)
    # Passed and failed only describe tests.
    return False


def parse_labels(selector: str) -> dict[str, str]:
    """Parse a `key=value,key2=value2` label selector.

    Raises:
        ValueError: If a term is not `key=value`
    """
    labels: dict[str, str] = {}
    for term in filter(None, (part.strip() for part in selector.split(","))):
        key, sep, value = term.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid label selector term: {term!r}")
        labels[key.strip()] = value.strip()
    return labels


class SelectionParams(BaseModel):
    """Filters for selecting objects. Unset filters match everything."""

    kind: CrdKind | None = None
    name: str | None = None
    labels: dict[str, str] | None = None
    state: CrdState | None = None

    @field_validator("labels", mode="before")
    @classmethod
    def parse_label_selector(cls, v):
        if isinstance(v, str):
            return parse_labels(v)
        return v

    def matches(self, obj: Crd) -> bool:
        if self.kind is not None and obj.crd_name.kind != self.kind:
            return False
        if self.name is not None and obj.name != self.name:
            return False
        if self.labels and any(
            obj.metadata.labels.get(key) != value for key, value in self.labels.items()
        ):
            return False
        if self.state is None:
            return True
        if isinstance(obj, Test):
            return _test_in_state(obj, self.state)
        return _resource_in_state(obj, self.state)


__all__ = ["CrdState", "SelectionParams", "parse_labels"]
