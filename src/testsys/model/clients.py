"""Typed status and finalizer operations on Resources and Tests.

The controller and agents never build patches themselves; they go through
these clients so that every status path is written in one place.

Public API (the "studs"):
    ResourceClient: Status, finalizer and request operations for Resources
    TestClient: Status and finalizer operations for Tests
    ResourceRequest: What a resource agent receives for one job
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from .exceptions import ObjectNotFoundError
from .finalizers import Finalizer, add_finalizer, remove_finalizer
from .models import (
    Crd,
    Resource,
    ResourceAction,
    ResourceError,
    ResourceStatus,
    TaskState,
    Test,
    TestResults,
    TestStatus,
)
from .store import JsonPatch, ObjectStore
from .templating import ConfigResolver

_logger = logging.getLogger(__name__)

_STATUS_FIELDS = {ResourceAction.CREATE: "creation", ResourceAction.DESTROY: "destruction"}


class ResourceRequest(BaseModel):
    """Resolved configuration handed to a resource agent."""

    configuration: dict[str, Any] = Field(default_factory=dict)
    secrets: dict[str, str] = Field(default_factory=dict)
    # Output of the creation job; only set for destruction requests.
    created_resource: dict[str, Any] | None = None


async def _add_finalizer(store: ObjectStore, obj: Crd, finalizer: Finalizer) -> Crd | None:
    finalizers = add_finalizer(obj, finalizer)
    _logger.info("Adding finalizer %s to %s", finalizer.value, obj.crd_name)
    return await store.replace_finalizers(obj.crd_name, obj.metadata.finalizers, finalizers)


async def _remove_finalizer(store: ObjectStore, obj: Crd, finalizer: Finalizer) -> Crd | None:
    finalizers = remove_finalizer(obj, finalizer)
    _logger.info("Removing finalizer %s from %s", finalizer.value, obj.crd_name)
    return await store.replace_finalizers(obj.crd_name, obj.metadata.finalizers, finalizers)


class ResourceClient:
    """Status and finalizer operations for Resource objects."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store
        self._resolver = ConfigResolver(store)

    async def get(self, name: str) -> Resource:
        resource = await self._store.get_resource(name)
        if resource is None:
            raise ObjectNotFoundError(f"Resource '{name}' does not exist")
        return resource

    async def initialize_status(self, name: str) -> Resource:
        """Write an empty status, failing if one was written concurrently."""
        resource = await self.get(name)
        return await self._store.patch_status(
            resource.crd_name,
            [JsonPatch.test("/status", None), JsonPatch.add("/status", ResourceStatus())],
        )

    async def send_task_state(
        self, name: str, action: ResourceAction, task_state: TaskState
    ) -> Resource:
        resource = await self.get(name)
        field = _STATUS_FIELDS[action]
        return await self._store.patch_status(
            resource.crd_name, [JsonPatch.replace(f"/status/{field}/taskState", task_state.value)]
        )

    async def send_creation_success(
        self, name: str, created_resource: dict[str, Any]
    ) -> Resource:
        """Publish the created resource and mark creation completed."""
        resource = await self.get(name)
        return await self._store.patch_status(
            resource.crd_name,
            [
                JsonPatch.add("/status/createdResource", created_resource),
                JsonPatch.replace("/status/creation/taskState", TaskState.COMPLETED.value),
            ],
        )

    async def send_error(
        self, name: str, action: ResourceAction, error: ResourceError
    ) -> Resource:
        """Mark the action's task as failed and record why."""
        resource = await self.get(name)
        field = _STATUS_FIELDS[action]
        _logger.error("%s of %s failed: %s", field.capitalize(), resource.crd_name, error)
        return await self._store.patch_status(
            resource.crd_name,
            [
                JsonPatch.replace(f"/status/{field}/taskState", TaskState.ERROR.value),
                JsonPatch.add(f"/status/{field}/error", error),
            ],
        )

    async def get_agent_info(self, name: str) -> dict[str, Any] | None:
        resource = await self.get(name)
        return resource.status.agent_info if resource.status else None

    async def send_agent_info(self, name: str, info: dict[str, Any]) -> Resource:
        resource = await self.get(name)
        return await self._store.patch_status(
            resource.crd_name, [JsonPatch.add("/status/agentInfo", info)]
        )

    async def add_finalizer(self, resource: Resource, finalizer: Finalizer) -> Crd | None:
        return await _add_finalizer(self._store, resource, finalizer)

    async def remove_finalizer(self, resource: Resource, finalizer: Finalizer) -> Crd | None:
        return await _remove_finalizer(self._store, resource, finalizer)

    async def get_resource_request(self, name: str, action: ResourceAction) -> ResourceRequest:
        """Build the request for a resource agent job.

        The configuration is resolved against live Resource outputs.

        Raises:
            ConfigResolutionError: If a template cannot be resolved
        """
        resource = await self.get(name)
        agent = resource.spec.agent
        configuration = await self._resolver.resolve(agent.configuration or {})
        return ResourceRequest(
            configuration=configuration,
            secrets=dict(agent.secrets or {}),
            created_resource=(
                resource.created_resource if action == ResourceAction.DESTROY else None
            ),
        )


class TestClient:
    """Status and finalizer operations for Test objects."""

    __test__ = False

    def __init__(self, store: ObjectStore) -> None:
        self._store = store
        self._resolver = ConfigResolver(store)

    async def get(self, name: str) -> Test:
        test = await self._store.get_test(name)
        if test is None:
            raise ObjectNotFoundError(f"Test '{name}' does not exist")
        return test

    async def initialize_status(self, name: str) -> Test:
        test = await self.get(name)
        return await self._store.patch_status(
            test.crd_name,
            [JsonPatch.test("/status", None), JsonPatch.add("/status", TestStatus())],
        )

    async def send_task_state(self, name: str, task_state: TaskState) -> Test:
        test = await self.get(name)
        return await self._store.patch_status(
            test.crd_name, [JsonPatch.replace("/status/agent/taskState", task_state.value)]
        )

    async def send_test_results(self, name: str, results: TestResults) -> Test:
        """Append one result record."""
        test = await self.get(name)
        updated = [*test.agent_status.results, results]
        return await self._store.patch_status(
            test.crd_name, [JsonPatch.replace("/status/agent/results", updated)]
        )

    async def send_test_done(self, name: str) -> Test:
        return await self.send_task_state(name, TaskState.COMPLETED)

    async def send_agent_error(self, name: str, message: str) -> Test:
        test = await self.get(name)
        _logger.error("Test '%s' failed: %s", name, message)
        return await self._store.patch_status(
            test.crd_name,
            [
                JsonPatch.replace("/status/agent/taskState", TaskState.ERROR.value),
                JsonPatch.add("/status/agent/error", message),
            ],
        )

    async def send_resource_error(self, name: str, message: str) -> Test:
        test = await self.get(name)
        return await self._store.patch_status(
            test.crd_name, [JsonPatch.add("/status/controller/resourceError", message)]
        )

    async def get_agent_info(self, name: str) -> dict[str, Any] | None:
        test = await self.get(name)
        return test.agent_status.info

    async def send_agent_info(self, name: str, info: dict[str, Any]) -> Test:
        test = await self.get(name)
        return await self._store.patch_status(
            test.crd_name, [JsonPatch.add("/status/agent/info", info)]
        )

    async def resolve_configuration(self, name: str) -> dict[str, Any]:
        test = await self.get(name)
        return await self._resolver.resolve(test.spec.agent.configuration or {})

    async def add_finalizer(self, test: Test, finalizer: Finalizer) -> Crd | None:
        return await _add_finalizer(self._store, test, finalizer)

    async def remove_finalizer(self, test: Test, finalizer: Finalizer) -> Crd | None:
        return await _remove_finalizer(self._store, test, finalizer)


__all__ = ["ResourceClient", "ResourceRequest", "TestClient"]
