"""Agent Registry - Discovers and manages agent implementations.

Agents register themselves in their package's pyproject.toml:
    [project.entry-points."testsys.agents"]
    cluster = "my_agents:ClusterAgent"

Public API (the "studs"):
    AgentRegistry: Look up agent classes by name
"""

from __future__ import annotations

import logging
from importlib.metadata import entry_points

from .base import ResourceAgentBase, TestAgentBase

_logger = logging.getLogger(__name__)

AgentClass = type[ResourceAgentBase] | type[TestAgentBase]


class AgentRegistry:
    """Registry for discovering and managing agents.

    Agents can be:
    1. Installed Python packages (discovered via entry points)
    2. Registered programmatically with register_agent()
    """

    # Entry point group for agent discovery
    ENTRY_POINT_GROUP = "testsys.agents"

    def __init__(self) -> None:
        self._agents: dict[str, AgentClass] = {}
        self._discovered = False

    def discover_agents(self) -> dict[str, AgentClass]:
        """Discover all installed agents via entry points.

        Entry points that fail to load, or that are not agent classes, are
        logged and skipped.

        Returns:
            Dict mapping agent names to agent classes
        """
        self._discovered = True
        try:
            eps = entry_points(group=self.ENTRY_POINT_GROUP)
        except Exception as e:
            _logger.warning("Failed to discover agents: %s", e, exc_info=True)
            return self._agents

        for ep in eps:
            try:
                agent_class = ep.load()
            except Exception as e:
                _logger.warning("Failed to load agent %s: %s", ep.name, e, exc_info=True)
                continue
            if isinstance(agent_class, type) and issubclass(
                agent_class, (ResourceAgentBase, TestAgentBase)
            ):
                self._agents.setdefault(ep.name, agent_class)
            else:
                _logger.warning("Entry point %s is not an agent class", ep.name)

        return self._agents

    def _ensure_discovered(self) -> None:
        if not self._discovered:
            self.discover_agents()

    def get_resource_agent(self, name: str) -> ResourceAgentBase | None:
        """Get an instance of a resource agent by name.

        Returns:
            Agent instance or None if no resource agent has that name
        """
        self._ensure_discovered()
        agent_class = self._agents.get(name)
        if agent_class is not None and issubclass(agent_class, ResourceAgentBase):
            return agent_class()
        return None

    def get_test_agent(self, name: str) -> TestAgentBase | None:
        """Get an instance of a test agent by name.

        Returns:
            Agent instance or None if no test agent has that name
        """
        self._ensure_discovered()
        agent_class = self._agents.get(name)
        if agent_class is not None and issubclass(agent_class, TestAgentBase):
            return agent_class()
        return None

    def list_agents(self) -> dict[str, str]:
        """List all available agents.

        Returns:
            Dict mapping agent names to "resource" or "test"
        """
        self._ensure_discovered()
        return {
            name: "resource" if issubclass(agent_class, ResourceAgentBase) else "test"
            for name, agent_class in sorted(self._agents.items())
        }

    def register_agent(self, agent_class: AgentClass, name: str | None = None) -> None:
        """Manually register an agent class.

        Useful for testing or programmatic registration. A manual
        registration wins over a discovered one of the same name.

        Args:
            agent_class: Agent class to register
            name: Name to register under. Defaults to the class's `name`
        """
        self._agents[name or agent_class.name] = agent_class


__all__ = ["AgentRegistry"]
