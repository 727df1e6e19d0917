"""TestManager - the user-facing operations on a TestSys object store.

Public API (the "studs"):
    TestManager: Create, list, delete, restart and summarize objects
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path

from ..config import ControllerConfig
from ..model.exceptions import ObjectNotFoundError
from ..model.manifest import read_manifest
from ..model.models import Crd, CrdName, ResourceAction, Test
from ..model.store import ObjectStore
from .delete import DeleteEvent, DeletionOrchestrator, deletion_graph
from .selection import SelectionParams
from .status import StatusSnapshot

_logger = logging.getLogger(__name__)


class TestManager:
    """Operations users run against the objects in a store.

    Example:
        manager = TestManager(FileStore())
        await manager.add_manifest("tests.yaml")
        print((await manager.status(SelectionParams())).to_table())
    """

    __test__ = False

    def __init__(self, store: ObjectStore, config: ControllerConfig | None = None) -> None:
        self._store = store
        self._config = config or ControllerConfig()

    @property
    def store(self) -> ObjectStore:
        return self._store

    async def create_object(self, obj: Crd) -> Crd:
        """Create a Test or Resource. Raises ObjectExistsError if its name is taken."""
        return await self._store.create(obj)

    async def add_manifest(self, path: Path | str) -> list[Crd]:
        """Create every object in a YAML manifest, in document order.

        Raises:
            ValueError: If the manifest is invalid; nothing is created
            ObjectExistsError: If an object already exists; earlier ones stay created
        """
        objects = read_manifest(path)
        return [await self.create_object(obj) for obj in objects]

    async def list(self, selection: SelectionParams | None = None) -> list[Crd]:
        """List Tests, then Resources, matching `selection`."""
        selection = selection or SelectionParams()
        objects: list[Crd] = [*await self._store.list_tests(), *await self._store.list_resources()]
        return [obj for obj in objects if selection.matches(obj)]

    async def with_dependencies(self, objects: list[Crd]) -> list[Crd]:
        """Add every Resource the objects transitively need.

        Each object appears once. Names of Resources that do not exist are ignored.
        """
        selected: dict[CrdName, Crd] = {}
        to_visit = list(objects)
        while to_visit:
            obj = to_visit.pop()
            if obj.crd_name in selected:
                continue
            selected[obj.crd_name] = obj
            needed = obj.spec.resources if isinstance(obj, Test) else obj.spec.depends_on
            for name in needed:
                resource = await self._store.get_resource(name)
                if resource is not None:
                    to_visit.append(resource)
        return list(selected.values())

    def _orchestrator(self) -> DeletionOrchestrator:
        return DeletionOrchestrator(self._store, poll_interval=self._config.delete_poll_seconds)

    async def delete(
        self, selection: SelectionParams | None = None, include_dependencies: bool = False
    ) -> AsyncIterator[DeleteEvent]:
        """Delete the selected objects in dependency order.

        Args:
            selection: Objects to delete
            include_dependencies: Also delete every Resource the selection needs

        Yields:
            Progress events

        Raises:
            DeletionError: If the objects' dependencies form a cycle
        """
        objects = await self.list(selection)
        if include_dependencies:
            objects = await self.with_dependencies(objects)
        async for event in self._orchestrator().delete(deletion_graph(objects)):
            yield event

    async def delete_all(self) -> AsyncIterator[DeleteEvent]:
        """Delete every Test and Resource in dependency order."""
        async for event in self.delete(SelectionParams()):
            yield event

    async def force_delete_resource(self, selection: SelectionParams) -> list[Crd]:
        """Remove selected Resources at once, ignoring their finalizers.

        Their jobs are deleted too. Nothing destroys the underlying
        infrastructure, so it may be left behind. Selected Tests get a
        normal deletion request.

        Returns:
            The objects acted on
        """
        objects = await self.list(selection)
        for obj in objects:
            if isinstance(obj, Test):
                await self._store.delete(obj.crd_name)
                continue
            for action in ResourceAction:
                await self._store.delete_job(obj.job_name(action))
            await self._store.force_delete(obj.crd_name)
        return objects

    async def restart_test(self, name: str, timeout: float | None = None) -> Test:
        """Delete a Test, wait until it is gone and recreate it with a fresh status.

        Args:
            name: Test to restart
            timeout: Seconds to wait for the deletion. None waits forever

        Raises:
            ObjectNotFoundError: If the Test does not exist
            TimeoutError: If the Test is not deleted in time
        """
        test = await self._store.get_test(name)
        if test is None:
            raise ObjectNotFoundError(f"Test '{name}' does not exist")

        fresh = test.model_copy(deep=True)
        fresh.status = None
        fresh.metadata.finalizers = []
        fresh.metadata.deletion_timestamp = None
        fresh.metadata.creation_timestamp = None

        await self._store.delete(test.crd_name)
        async with asyncio.timeout(timeout):
            while await self._store.get_test(name) is not None:
                _logger.debug("Waiting for test '%s' to be deleted", name)
                await asyncio.sleep(self._config.delete_poll_seconds)

        _logger.info("Recreating test '%s'", name)
        return await self._store.create(fresh)

    async def status(self, selection: SelectionParams | None = None) -> StatusSnapshot:
        return StatusSnapshot.from_objects(await self.list(selection))


__all__ = ["TestManager"]
