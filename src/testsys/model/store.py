"""ObjectStore protocol - the contract the controller expects from object storage.

Every mutation is a patch. Status patches may carry `test` operations and
finalizer replacements carry the finalizer list the caller last saw; either
precondition failing raises PreconditionFailedError so that two concurrent
reconciles cannot both change the same object undetected.

Public API (the "studs"):
    ObjectStore: Protocol for storing Tests, Resources and jobs
    JsonPatch: A single JSON patch operation
    apply_patches: Apply patches to a serialized object document
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .exceptions import PreconditionFailedError

if TYPE_CHECKING:
    from .models import Crd, CrdName, Job, JobStatus, Resource, Test


class JsonPatch(BaseModel):
    """A JSON patch operation addressed by a JSON pointer, e.g. `/status/creation`."""

    op: Literal["add", "replace", "test"]
    path: str = Field(..., description="JSON pointer into the serialized object")
    value: Any = None

    @classmethod
    def add(cls, path: str, value: Any) -> JsonPatch:
        return cls(op="add", path=path, value=_to_json(value))

    @classmethod
    def replace(cls, path: str, value: Any) -> JsonPatch:
        return cls(op="replace", path=path, value=_to_json(value))

    @classmethod
    def test(cls, path: str, value: Any) -> JsonPatch:
        return cls(op="test", path=path, value=_to_json(value))


def _to_json(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    return value


def _split_pointer(path: str) -> list[str]:
    if not path.startswith("/"):
        raise ValueError(f"JSON pointer must start with '/': {path!r}")
    return [part.replace("~1", "/").replace("~0", "~") for part in path[1:].split("/")]


def apply_patches(document: dict[str, Any], patches: list[JsonPatch]) -> dict[str, Any]:
    """Apply patches to a copy of `document`.

    All patches apply or none do.

    Raises:
        PreconditionFailedError: If a `test` operation does not match
        ValueError: If a path does not exist in the document
    """
    result = copy.deepcopy(document)
    for patch in patches:
        *parents, leaf = _split_pointer(patch.path)
        target: Any = result
        for part in parents:
            if not isinstance(target, dict) or target.get(part) is None:
                raise ValueError(f"Path {patch.path!r} does not exist")
            target = target[part]
        if not isinstance(target, dict):
            raise ValueError(f"Path {patch.path!r} does not address an object member")

        if patch.op == "test":
            if target.get(leaf) != patch.value:
                raise PreconditionFailedError(
                    f"Test of {patch.path!r} failed: expected {patch.value!r}, "
                    f"found {target.get(leaf)!r}"
                )
        elif patch.op == "replace" and leaf not in target:
            raise ValueError(f"Cannot replace missing path {patch.path!r}")
        else:
            target[leaf] = copy.deepcopy(patch.value)
    return result


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol defining storage services available to the controller and agents.

    Deletion follows finalizer semantics: `delete` removes an object at once
    when it has no finalizers and otherwise only marks it; the object
    disappears when its last finalizer is removed.

    Implementations must provide all methods defined here.
    """

    async def get_resource(self, name: str) -> Resource | None:
        """Get a Resource by name, None if it does not exist."""
        ...

    async def get_test(self, name: str) -> Test | None:
        """Get a Test by name, None if it does not exist."""
        ...

    async def list_resources(self) -> list[Resource]:
        """List all Resources."""
        ...

    async def list_tests(self) -> list[Test]:
        """List all Tests."""
        ...

    async def create(self, obj: Crd) -> Crd:
        """Create a new object. Raises ObjectExistsError if the name is taken."""
        ...

    async def delete(self, name: CrdName) -> bool:
        """Request deletion. Returns False if the object does not exist."""
        ...

    async def force_delete(self, name: CrdName) -> bool:
        """Remove an object regardless of its finalizers."""
        ...

    async def patch_status(self, name: CrdName, patches: list[JsonPatch]) -> Crd:
        """Apply JSON patches to an object. Raises ObjectNotFoundError if absent."""
        ...

    async def replace_finalizers(
        self, name: CrdName, expected: list[str], finalizers: list[str]
    ) -> Crd | None:
        """Replace the finalizer list if it still equals `expected`.

        Returns the updated object, or None if it was removed because
        deletion was requested and no finalizers remain.
        """
        ...

    async def get_job(self, name: str) -> Job | None:
        """Get a job by name, None if it does not exist."""
        ...

    async def create_job(self, job: Job) -> Job:
        """Create a job. Raises ObjectExistsError if the name is taken."""
        ...

    async def update_job_status(self, name: str, status: JobStatus) -> Job:
        """Replace a job's container counts."""
        ...

    async def delete_job(self, name: str) -> bool:
        """Delete a job. Returns False if it did not exist."""
        ...


__all__ = ["JsonPatch", "ObjectStore", "apply_patches"]
