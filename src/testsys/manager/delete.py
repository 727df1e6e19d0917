"""Delete Tests and Resources in dependency order.

The deletion graph has an edge from every object to each object it needs:
a Test points at the Resources it uses and a Resource at the Resources it
depends on. Objects nothing points at anymore are deleted together as a
wave; the next wave starts once every object of the current one is gone.

A Resource whose destruction fails is reported as failed and no longer
waited for, so the Resources it depends on are deleted anyway. Their
infrastructure may then be torn down while the failed Resource's remains,
leaving it orphaned. Stopping instead would block every later wave on one
bad Resource.

Public API (the "studs"):
    DeleteEventKind / DeleteEvent: Progress reported while deleting
    deletion_graph: Build the graph for a set of objects
    DeletionOrchestrator: Drain a deletion graph wave by wave
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from enum import Enum

import networkx as nx
from pydantic import BaseModel

from ..model.exceptions import DeletionError
from ..model.models import Crd, CrdKind, CrdName, Resource, TaskState, Test
from ..model.store import ObjectStore

_logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0


class DeleteEventKind(str, Enum):
    STARTING = "starting"
    DELETED = "deleted"
    FAILED = "failed"


class DeleteEvent(BaseModel):
    kind: DeleteEventKind
    name: CrdName

    class Config:
        frozen = True

    def __str__(self) -> str:
        return f"{self.kind.value.capitalize()} {self.name}"


def deletion_graph(objects: Iterable[Crd]) -> nx.DiGraph:
    """Build a deletion graph over `objects`.

    Edges are only added between objects in the set, so an object outside it
    never holds back or gets deleted with the selection.
    """
    objects = list(objects)
    graph = nx.DiGraph()
    graph.add_nodes_from(obj.crd_name for obj in objects)
    for obj in objects:
        needed = obj.spec.resources if isinstance(obj, Test) else obj.spec.depends_on
        for name in needed:
            dependency = CrdName.resource(name)
            if dependency in graph:
                graph.add_edge(obj.crd_name, dependency)
    return graph


def _sort_key(name: CrdName) -> tuple[str, str]:
    return (name.kind.value, name.name)


class DeletionOrchestrator:
    """Delete the objects of a deletion graph, reporting progress as it goes."""

    def __init__(self, store: ObjectStore, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Initialize the orchestrator.

        Args:
            store: Store holding the objects
            poll_interval: Seconds between checks on objects awaiting deletion
        """
        self._store = store
        self._poll_interval = poll_interval

    async def _get(self, name: CrdName) -> Crd | None:
        if name.kind == CrdKind.RESOURCE:
            return await self._store.get_resource(name.name)
        return await self._store.get_test(name.name)

    async def delete(self, graph: nx.DiGraph) -> AsyncIterator[DeleteEvent]:
        """Delete every object in `graph`, yielding progress events.

        The graph is copied, not consumed. Wrap the iteration in
        `asyncio.timeout()` to bound how long it may take.

        Raises:
            DeletionError: If the graph has a cycle; raised before anything is deleted
        """
        if not nx.is_directed_acyclic_graph(graph):
            cycle = nx.find_cycle(graph)
            raise DeletionError(
                "Dependency cycle prevents deletion: "
                + " -> ".join(str(edge[0]) for edge in cycle)
            )

        remaining = graph.copy()
        awaiting: list[CrdName] = []
        while True:
            still_awaiting: list[CrdName] = []
            for name in awaiting:
                obj = await self._get(name)
                if obj is None:
                    _logger.info("%s deleted", name)
                    yield DeleteEvent(kind=DeleteEventKind.DELETED, name=name)
                elif isinstance(obj, Resource) and obj.destruction_task_state == TaskState.ERROR:
                    _logger.warning("Destruction of %s failed, continuing without it", name)
                    yield DeleteEvent(kind=DeleteEventKind.FAILED, name=name)
                else:
                    still_awaiting.append(name)
            awaiting = still_awaiting

            if awaiting:
                await asyncio.sleep(self._poll_interval)
                continue
            if remaining.number_of_nodes() == 0:
                return

            wave = sorted(
                (name for name, degree in remaining.in_degree() if degree == 0), key=_sort_key
            )
            remaining.remove_nodes_from(wave)
            for name in wave:
                yield DeleteEvent(kind=DeleteEventKind.STARTING, name=name)
                if not await self._store.delete(name):
                    _logger.debug("%s was already gone", name)
            awaiting = wave


__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "DeleteEvent",
    "DeleteEventKind",
    "DeletionOrchestrator",
    "deletion_graph",
]
