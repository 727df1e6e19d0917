"""Agent base classes - the boundary between the controller and the work.

A resource agent knows how to create and destroy one kind of resource; a
test agent knows how to run one kind of test. The controller never calls
them directly: it starts a job, and the AgentRunner calls the agent named in
the job with an AgentContext.

Example implementation:
    class ClusterAgent(ResourceAgentBase):
        name = "cluster"

        async def create(self, ctx: AgentContext) -> dict[str, Any]:
            # Provision the cluster described by ctx.configuration
            return {"endpoint": endpoint}

        async def destroy(self, ctx: AgentContext, created_resource) -> None:
            # Tear the cluster down
            ...

Public API (the "studs"):
    AgentContext: What an agent receives for one job
    ResourceAgentBase: Base class for resource agents
    TestAgentBase: Base class for test agents
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from ..model.models import TestResults

_logger = logging.getLogger(__name__)

InfoGetter = Callable[[], Awaitable["dict[str, Any] | None"]]
InfoSender = Callable[[dict[str, Any]], Awaitable[Any]]


class AgentContext:
    """Resolved configuration, secrets and the info channel for one job."""

    def __init__(
        self,
        configuration: dict[str, Any],
        secrets: dict[str, str] | None = None,
        get_info: InfoGetter | None = None,
        send_info: InfoSender | None = None,
        attempt: int = 0,
    ) -> None:
        """Initialize the context.

        Args:
            configuration: Agent configuration with templates already resolved
            secrets: Map of secret type to secret name
            get_info: Reads the agent's persisted info
            send_info: Persists the agent's info
            attempt: Zero-based attempt number for retried tests
        """
        self.configuration = configuration
        self._secrets = secrets or {}
        self._get_info = get_info
        self._send_info = send_info
        self.attempt = attempt

    async def get_info(self) -> dict[str, Any]:
        """Read the info this agent persisted earlier, empty if none."""
        if self._get_info is None:
            return {}
        return await self._get_info() or {}

    async def send_info(self, info: dict[str, Any]) -> None:
        """Persist info so a later job, e.g. destruction, can read it."""
        if self._send_info is None:
            _logger.debug("No info channel configured, info not persisted")
            return
        await self._send_info(info)

    def get_secret(self, secret_type: str) -> str | None:
        """Get a secret value by its type.

        The secret's name is looked up as an environment variable, upper-cased
        with hyphens replaced by underscores.

        Args:
            secret_type: Key in the agent's `secrets` map

        Returns:
            Secret value or None if not found
        """
        secret_name = self._secrets.get(secret_type)
        if secret_name is None:
            return None
        env_key = secret_name.upper().replace("-", "_")
        value = os.environ.get(env_key)
        if value is None:
            _logger.debug("Secret %r (env: %s) not found", secret_name, env_key)
        return value


class _NamedAgent(ABC):
    # Agent name - must be unique across all agents
    name: str = "base"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Enforce that concrete subclasses define a unique name."""
        super().__init_subclass__(**kwargs)
        # If ABC is in the direct bases, it's an abstract intermediary -- skip
        if ABC not in cls.__bases__ and cls.name == "base":
            raise TypeError(f"{cls.__name__} must define a unique 'name' class attribute")


class ResourceAgentBase(_NamedAgent, ABC):
    """Base class all resource agents inherit from."""

    @abstractmethod
    async def create(self, ctx: AgentContext) -> dict[str, Any]:
        """Create the resource.

        Args:
            ctx: Job context with the resolved configuration

        Returns:
            The created resource, published for Tests and other Resources

        Raises:
            AgentError: If creation fails; `error_resources` says what was left behind
        """
        ...

    @abstractmethod
    async def destroy(self, ctx: AgentContext, created_resource: dict[str, Any] | None) -> None:
        """Destroy the resource.

        Args:
            ctx: Job context with the resolved configuration
            created_resource: What creation published, None if it never finished

        Raises:
            AgentError: If destruction fails
        """
        ...


class TestAgentBase(_NamedAgent, ABC):
    """Base class all test agents inherit from."""

    __test__ = False

    @abstractmethod
    async def run(self, ctx: AgentContext) -> TestResults:
        """Run the test once.

        Args:
            ctx: Job context; `ctx.attempt` counts reruns

        Returns:
            Results of this run

        Raises:
            AgentError: If the test could not be run at all
        """
        ...


__all__ = ["AgentContext", "ResourceAgentBase", "TestAgentBase"]
