"""Finalizer guards for Tests and Resources.

A finalizer keeps an object alive until the controller has cleaned up what
it guards. Each guard is added by the step about to start the guarded thing
and removed by the step that finished cleaning it up. Adding a present guard
or removing an absent one is an error, never a no-op; that is how the
controller notices objects that were changed behind its back.

Public API (the "studs"):
    Finalizer: The fixed set of guards
    has_finalizer / has_finalizers: Queries
    add_finalizer / remove_finalizer: Compute the next finalizer list
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import DuplicateFinalizerError, MissingFinalizerError

if TYPE_CHECKING:
    from .models import Crd

_DOMAIN = "testsys.dev"


class Finalizer(str, Enum):
    """The guards the controller places on objects."""

    # Held from the first reconcile until the object may disappear.
    MAIN = f"{_DOMAIN}/controlled"
    # Resource: a creation job may exist.
    CREATION_JOB = f"{_DOMAIN}/resource-creation-job"
    # Resource: created infrastructure may exist.
    RESOURCE = f"{_DOMAIN}/resources-exist"
    # Test: the test agent job may exist.
    TEST_JOB = f"{_DOMAIN}/test-job"


def has_finalizers(obj: Crd) -> bool:
    return bool(obj.metadata.finalizers)


def has_finalizer(obj: Crd, finalizer: Finalizer) -> bool:
    return finalizer.value in obj.metadata.finalizers


def add_finalizer(obj: Crd, finalizer: Finalizer) -> list[str]:
    """Return the object's finalizers with `finalizer` added.

    Raises:
        DuplicateFinalizerError: If the finalizer is already present
    """
    if has_finalizer(obj, finalizer):
        raise DuplicateFinalizerError(finalizer.value, obj.metadata.name)
    return [*obj.metadata.finalizers, finalizer.value]


def remove_finalizer(obj: Crd, finalizer: Finalizer) -> list[str]:
    """Return the object's finalizers with `finalizer` removed.

    Raises:
        MissingFinalizerError: If the finalizer is not present
    """
    if not has_finalizer(obj, finalizer):
        raise MissingFinalizerError(finalizer.value, obj.metadata.name)
    return [f for f in obj.metadata.finalizers if f != finalizer.value]


__all__ = [
    "Finalizer",
    "add_finalizer",
    "has_finalizer",
    "has_finalizers",
    "remove_finalizer",
]
