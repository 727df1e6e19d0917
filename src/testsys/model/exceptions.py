"""Exceptions for the TestSys model and controller.

Public API (the "studs"):
    TestSysError: Base exception for all TestSys errors
    ObjectNotFoundError: A Test or Resource does not exist
    ObjectExistsError: A Test, Resource or job already exists
    DuplicateFinalizerError: Adding a finalizer that is already present
    MissingFinalizerError: Removing a finalizer that is absent
    PreconditionFailedError: A patch precondition no longer holds (retryable)
    TooManyJobContainersError: A job reports more than one container
    ConfigResolutionError: A templated configuration value cannot be resolved
    DurationParseError: A timeout string is malformed
    DeletionError: The deletion graph cannot be drained
    InvalidObjectError: A stored document cannot be read as its kind
    AgentError: An agent failed, possibly leaving resources behind
    AgentNotFoundError: No agent is registered under a name
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ErrorResources


class TestSysError(Exception):
    """Base exception for all TestSys errors."""

    # Keep pytest from collecting this class.
    __test__ = False


class ObjectNotFoundError(TestSysError):
    """A Test or Resource does not exist."""

    pass


class ObjectExistsError(TestSysError):
    """A Test, Resource or job already exists."""

    pass


class DuplicateFinalizerError(TestSysError):
    """The finalizer is already present on the object."""

    def __init__(self, finalizer: str, object_name: str = "") -> None:
        self.finalizer = finalizer
        self.object_name = object_name
        super().__init__(f"Finalizer '{finalizer}' already exists on '{object_name}'")


class MissingFinalizerError(TestSysError):
    """The finalizer is not present on the object."""

    def __init__(self, finalizer: str, object_name: str = "") -> None:
        self.finalizer = finalizer
        self.object_name = object_name
        super().__init__(f"Finalizer '{finalizer}' does not exist on '{object_name}'")


class PreconditionFailedError(TestSysError):
    """The object changed since it was read. This error is retryable."""

    pass


class TooManyJobContainersError(TestSysError):
    """A job's container counts do not describe exactly one container."""

    def __init__(self, job_name: str, active: int, succeeded: int, failed: int) -> None:
        self.job_name = job_name
        self.active = active
        self.succeeded = succeeded
        self.failed = failed
        super().__init__(
            f"Job '{job_name}' should have exactly one container, found "
            f"active={active} succeeded={succeeded} failed={failed}"
        )


class ConfigResolutionError(TestSysError):
    """A `${resource.field}` value could not be resolved."""

    pass


class DurationParseError(TestSysError, ValueError):
    """A duration string such as `1h30m` is malformed."""

    pass


class DeletionError(TestSysError):
    """The deletion graph could not be drained."""

    pass


class InvalidObjectError(TestSysError):
    """A stored document exists but cannot be read as its kind."""

    pass


class AgentError(TestSysError):
    """Raised by agents when their task fails.

    `error_resources` tells the controller whether anything was left behind
    and therefore whether a destruction job must still run.
    """

    def __init__(self, message: str, error_resources: ErrorResources | None = None) -> None:
        from .models import ErrorResources

        self.message = message
        self.error_resources = error_resources or ErrorResources.UNKNOWN
        super().__init__(message)


class AgentNotFoundError(TestSysError):
    """No agent is registered under the requested name."""

    pass


__all__ = [
    "TestSysError",
    "ObjectNotFoundError",
    "ObjectExistsError",
    "DuplicateFinalizerError",
    "MissingFinalizerError",
    "PreconditionFailedError",
    "TooManyJobContainersError",
    "ConfigResolutionError",
    "DurationParseError",
    "DeletionError",
    "InvalidObjectError",
    "AgentError",
    "AgentNotFoundError",
]
