"""User-facing operations: selection, deletion ordering and status."""

from .delete import DeleteEvent, DeleteEventKind, DeletionOrchestrator, deletion_graph
from .manager import TestManager
from .selection import CrdState, SelectionParams
from .status import StatusSnapshot

__all__ = [
    "CrdState",
    "DeleteEvent",
    "DeleteEventKind",
    "DeletionOrchestrator",
    "SelectionParams",
    "StatusSnapshot",
    "TestManager",
    "deletion_graph",
]
