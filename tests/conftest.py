"""Shared test fixtures."""

from datetime import datetime, timezone
from typing import Any

import pytest

from testsys.agents import AgentRegistry
from testsys.agents.builtin import DuplicatorAgent, EchoTestAgent
from testsys.config import ControllerConfig
from testsys.model.file_store import FileStore
from testsys.model.models import (
    Agent,
    DestructionPolicy,
    ObjectMeta,
    Resource,
    ResourceSpec,
    ResourceStatus,
    Test,
    TestSpec,
    TestStatus,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_resource(
    name: str = "res",
    *,
    depends_on: list[str] | None = None,
    conflicts_with: list[str] | None = None,
    policy: DestructionPolicy = DestructionPolicy.ON_DELETION,
    agent: str = "duplicator",
    configuration: dict[str, Any] | None = None,
    timeout: str | None = None,
    status: ResourceStatus | None = None,
    finalizers: list[str] | None = None,
    deleting: bool = False,
    labels: dict[str, str] | None = None,
) -> Resource:
    """Build a Resource in any state without going through the store."""
    return Resource(
        metadata=ObjectMeta(
            name=name,
            labels=labels or {},
            finalizers=finalizers or [],
            deletion_timestamp=T0 if deleting else None,
        ),
        spec=ResourceSpec(
            depends_on=depends_on or [],
            conflicts_with=conflicts_with or [],
            destruction_policy=policy,
            agent=Agent(name=agent, configuration=configuration, timeout=timeout),
        ),
        status=status,
    )


def make_test(
    name: str = "test",
    *,
    resources: list[str] | None = None,
    depends_on: list[str] | None = None,
    retries: int | None = None,
    agent: str = "echo",
    configuration: dict[str, Any] | None = None,
    timeout: str | None = None,
    status: TestStatus | None = None,
    finalizers: list[str] | None = None,
    deleting: bool = False,
    labels: dict[str, str] | None = None,
) -> Test:
    """Build a Test in any state without going through the store."""
    return Test(
        metadata=ObjectMeta(
            name=name,
            labels=labels or {},
            finalizers=finalizers or [],
            deletion_timestamp=T0 if deleting else None,
        ),
        spec=TestSpec(
            resources=resources or [],
            depends_on=depends_on or [],
            retries=retries,
            agent=Agent(name=agent, configuration=configuration, timeout=timeout),
        ),
        status=status,
    )


@pytest.fixture
def store(tmp_path):
    """An empty FileStore in a temporary directory."""
    return FileStore(state_dir=tmp_path / "state")


@pytest.fixture
def config(tmp_path):
    """Controller settings with short delays for tests."""
    return ControllerConfig(
        state_dir=tmp_path / "state",
        requeue_seconds=0.01,
        requeue_slow_seconds=0.02,
        delete_poll_seconds=0.01,
        controller_interval_seconds=0.01,
    )


@pytest.fixture
def registry():
    """A registry holding only the built-in agents."""
    registry = AgentRegistry()
    registry._discovered = True
    registry.register_agent(DuplicatorAgent)
    registry.register_agent(EchoTestAgent)
    return registry
