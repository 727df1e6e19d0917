"""File-based ObjectStore implementation.

Stores Tests, Resources and jobs as JSON files on the local filesystem.

Public API (the "studs"):
    FileStore: Concrete ObjectStore implementation using local files
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ValidationError

from .exceptions import (
    InvalidObjectError,
    ObjectExistsError,
    ObjectNotFoundError,
    PreconditionFailedError,
)
from .models import Crd, CrdKind, CrdName, Job, JobStatus, Resource, Test, crd_from_dict
from .store import JsonPatch, apply_patches

_logger = logging.getLogger(__name__)

# Pattern for valid object names: alphanumeric, hyphens, underscores, dots
_SAFE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")

_KIND_DIRS = {CrdKind.RESOURCE: "resources", CrdKind.TEST: "tests"}


def _sanitize_name(name: str) -> str:
    """Sanitize an object name to prevent path traversal.

    Args:
        name: Raw object name

    Returns:
        The name, safe for use as a filename

    Raises:
        ValueError: If name is empty or contains path traversal
    """
    if not name:
        raise ValueError("object name must not be empty")

    if "/" in name or "\\" in name:
        raise ValueError(f"object name contains path separators: {name!r}")

    if ".." in name:
        raise ValueError(f"object name contains path traversal: {name!r}")

    if not _SAFE_NAME_PATTERN.match(name):
        raise ValueError(
            f"object name contains invalid characters: {name!r}. "
            "Only alphanumeric, hyphens, underscores, and dots are allowed."
        )

    return name


class FileStore:
    """File-based ObjectStore implementation.

    Layout under the state directory:
        resources/{name}.json, tests/{name}.json, jobs/{name}.json

    Method bodies never await, so each call is atomic with respect to other
    coroutines on the same event loop.
    Documents are replaced atomically, and a document that exists but
    cannot be read raises InvalidObjectError instead of passing as absent.
    """

    def __init__(self, state_dir: Path | None = None) -> None:
        """Initialize FileStore.

        Args:
            state_dir: Directory for state files. Defaults to ~/.testsys/state/
        """
        if state_dir is None:
            state_dir = Path.home() / ".testsys" / "state"
        self._state_dir = state_dir
        for subdir in (*_KIND_DIRS.values(), "jobs"):
            (self._state_dir / subdir).mkdir(parents=True, exist_ok=True)

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def _object_path(self, name: CrdName) -> Path:
        return self._state_dir / _KIND_DIRS[name.kind] / f"{_sanitize_name(name.name)}.json"

    def _job_path(self, name: str) -> Path:
        return self._state_dir / "jobs" / f"{_sanitize_name(name)}.json"

    def _write(self, path: Path, obj: BaseModel) -> None:
        # Readers see the old document or the new one, never a partial write.
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(obj.model_dump_json(indent=2, by_alias=True))
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        _logger.debug("Saved %s", path)

    def _read(self, path: Path, model: type[BaseModel]) -> BaseModel | None:
        """Read a document, None if it does not exist.

        Raises:
            InvalidObjectError: If the document exists but is not valid
        """
        try:
            text = path.read_text()
        except FileNotFoundError:
            return None
        try:
            return model.model_validate_json(text)
        except ValidationError as e:
            raise InvalidObjectError(f"State file {path} is invalid: {e}") from e

    def _load(self, name: CrdName) -> Crd | None:
        model = Resource if name.kind == CrdKind.RESOURCE else Test
        return self._read(self._object_path(name), model)

    def _load_required(self, name: CrdName) -> Crd:
        obj = self._load(name)
        if obj is None:
            raise ObjectNotFoundError(f"{name} does not exist")
        return obj

    def _list(self, kind: CrdKind) -> list[Crd]:
        results: list[Crd] = []
        model = Resource if kind == CrdKind.RESOURCE else Test
        for path in sorted((self._state_dir / _KIND_DIRS[kind]).glob("*.json")):
            obj = self._read(path, model)
            # Deleted since the directory was listed.
            if obj is not None:
                results.append(obj)
        return results

    # -- Tests and Resources ---------------------------------------------

    async def get_resource(self, name: str) -> Resource | None:
        return self._load(CrdName.resource(name))

    async def get_test(self, name: str) -> Test | None:
        return self._load(CrdName.test(name))

    async def list_resources(self) -> list[Resource]:
        return self._list(CrdKind.RESOURCE)

    async def list_tests(self) -> list[Test]:
        return self._list(CrdKind.TEST)

    async def create(self, obj: Crd) -> Crd:
        """Create a new object with a fresh creation timestamp.

        Raises:
            ObjectExistsError: If an object of the same kind and name exists
        """
        path = self._object_path(obj.crd_name)
        if path.exists():
            raise ObjectExistsError(f"{obj.crd_name} already exists")
        created = obj.model_copy(deep=True)
        created.metadata.creation_timestamp = datetime.now(timezone.utc)
        created.metadata.deletion_timestamp = None
        self._write(path, created)
        _logger.info("Created %s", obj.crd_name)
        return created

    async def delete(self, name: CrdName) -> bool:
        obj = self._load(name)
        if obj is None:
            return False
        if not obj.metadata.finalizers:
            self._object_path(name).unlink()
            _logger.info("Deleted %s", name)
            return True
        if obj.metadata.deletion_timestamp is None:
            obj.metadata.deletion_timestamp = datetime.now(timezone.utc)
            self._write(self._object_path(name), obj)
            _logger.info("Marked %s for deletion", name)
        return True

    async def force_delete(self, name: CrdName) -> bool:
        path = self._object_path(name)
        if not path.exists():
            return False
        path.unlink()
        _logger.warning("Force deleted %s", name)
        return True

    async def patch_status(self, name: CrdName, patches: list[JsonPatch]) -> Crd:
        obj = self._load_required(name)
        document = apply_patches(obj.model_dump(mode="json", by_alias=True), patches)
        patched = crd_from_dict(document)
        self._write(self._object_path(name), patched)
        return patched

    async def replace_finalizers(
        self, name: CrdName, expected: list[str], finalizers: list[str]
    ) -> Crd | None:
        obj = self._load_required(name)
        if obj.metadata.finalizers != expected:
            raise PreconditionFailedError(
                f"Finalizers of {name} changed: expected {expected}, "
                f"found {obj.metadata.finalizers}"
            )
        if not finalizers and obj.metadata.deletion_timestamp is not None:
            self._object_path(name).unlink()
            _logger.info("Deleted %s after its last finalizer was removed", name)
            return None
        obj.metadata.finalizers = list(finalizers)
        self._write(self._object_path(name), obj)
        return obj

    # -- Jobs -------------------------------------------------------------

    async def get_job(self, name: str) -> Job | None:
        return self._read(self._job_path(name), Job)

    async def create_job(self, job: Job) -> Job:
        path = self._job_path(job.name)
        if path.exists():
            raise ObjectExistsError(f"Job '{job.name}' already exists")
        created = job.model_copy(deep=True)
        created.metadata.creation_timestamp = datetime.now(timezone.utc)
        self._write(path, created)
        _logger.info("Created job '%s'", job.name)
        return created

    async def update_job_status(self, name: str, status: JobStatus) -> Job:
        job = await self.get_job(name)
        if job is None:
            raise ObjectNotFoundError(f"Job '{name}' does not exist")
        job.status = status
        self._write(self._job_path(name), job)
        return job

    async def delete_job(self, name: str) -> bool:
        path = self._job_path(name)
        if not path.exists():
            return False
        path.unlink()
        _logger.info("Deleted job '%s'", name)
        return True


__all__ = ["FileStore"]
