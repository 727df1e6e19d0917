"""TestSys object models, storage and status clients."""

from .clients import ResourceClient, ResourceRequest, TestClient
from .exceptions import (
    AgentError,
    AgentNotFoundError,
    ConfigResolutionError,
    DeletionError,
    DuplicateFinalizerError,
    DurationParseError,
    InvalidObjectError,
    MissingFinalizerError,
    ObjectExistsError,
    ObjectNotFoundError,
    PreconditionFailedError,
    TestSysError,
    TooManyJobContainersError,
)
from .file_store import FileStore
from .finalizers import Finalizer
from .manifest import convert_manifest, read_manifest
from .models import (
    Agent,
    Crd,
    CrdKind,
    CrdName,
    DestructionPolicy,
    ErrorResources,
    Job,
    ObjectMeta,
    Outcome,
    Resource,
    ResourceAction,
    ResourceError,
    ResourceSpec,
    TaskState,
    Test,
    TestResults,
    TestSpec,
    TestUserState,
)
from .store import JsonPatch, ObjectStore

__all__ = [
    "Agent",
    "AgentError",
    "AgentNotFoundError",
    "ConfigResolutionError",
    "Crd",
    "CrdKind",
    "CrdName",
    "DeletionError",
    "DestructionPolicy",
    "DuplicateFinalizerError",
    "DurationParseError",
    "InvalidObjectError",
    "ErrorResources",
    "FileStore",
    "Finalizer",
    "Job",
    "JsonPatch",
    "MissingFinalizerError",
    "ObjectExistsError",
    "ObjectMeta",
    "ObjectNotFoundError",
    "ObjectStore",
    "Outcome",
    "PreconditionFailedError",
    "Resource",
    "ResourceAction",
    "ResourceClient",
    "ResourceError",
    "ResourceRequest",
    "ResourceSpec",
    "TaskState",
    "Test",
    "TestClient",
    "TestResults",
    "TestSpec",
    "TestSysError",
    "TestUserState",
    "TooManyJobContainersError",
    "convert_manifest",
    "read_manifest",
]
