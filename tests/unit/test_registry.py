"""Tests for AgentRegistry."""

from unittest.mock import MagicMock, patch

from testsys.agents.base import ResourceAgentBase, TestAgentBase
from testsys.agents.builtin import DuplicatorAgent, EchoTestAgent
from testsys.agents.registry import AgentRegistry
from testsys.model.models import Outcome, TestResults


class ConcreteResourceAgent(ResourceAgentBase):
    """Concrete resource agent for testing registry operations."""

    name = "test-resource"

    async def create(self, ctx):
        return {}

    async def destroy(self, ctx, created_resource):
        return None


class ConcreteTestAgent(TestAgentBase):
    """Concrete test agent for testing registry operations."""

    name = "test-runner"

    async def run(self, ctx):
        return TestResults(outcome=Outcome.PASS)


def _entry_point(name, loaded=None, error=None):
    ep = MagicMock()
    ep.name = name
    if error is not None:
        ep.load.side_effect = error
    else:
        ep.load.return_value = loaded
    return ep


class TestAgentRegistry:
    """Tests for AgentRegistry."""

    def test_init_default(self):
        registry = AgentRegistry()
        assert registry._agents == {}
        assert registry._discovered is False

    def test_register_then_get(self):
        registry = AgentRegistry()
        registry._discovered = True
        registry.register_agent(ConcreteResourceAgent)
        registry.register_agent(ConcreteTestAgent)

        assert isinstance(registry.get_resource_agent("test-resource"), ConcreteResourceAgent)
        assert isinstance(registry.get_test_agent("test-runner"), ConcreteTestAgent)

    def test_kind_mismatch_returns_none(self):
        registry = AgentRegistry()
        registry._discovered = True
        registry.register_agent(ConcreteResourceAgent)
        registry.register_agent(ConcreteTestAgent)

        assert registry.get_test_agent("test-resource") is None
        assert registry.get_resource_agent("test-runner") is None

    def test_unknown_returns_none(self):
        registry = AgentRegistry()
        registry._discovered = True
        assert registry.get_resource_agent("nonexistent") is None
        assert registry.get_test_agent("nonexistent") is None

    def test_register_under_other_name(self):
        registry = AgentRegistry()
        registry._discovered = True
        registry.register_agent(ConcreteResourceAgent, name="alias")
        assert registry.list_agents() == {"alias": "resource"}

    def test_list_agents_sorted_with_kinds(self):
        registry = AgentRegistry()
        registry._discovered = True
        registry.register_agent(ConcreteTestAgent)
        registry.register_agent(ConcreteResourceAgent)
        assert list(registry.list_agents().items()) == [
            ("test-resource", "resource"),
            ("test-runner", "test"),
        ]

    def test_discover_from_entry_points(self):
        eps = [
            _entry_point("duplicator", DuplicatorAgent),
            _entry_point("echo", EchoTestAgent),
        ]
        with patch("testsys.agents.registry.entry_points", return_value=eps) as mock_eps:
            registry = AgentRegistry()
            assert registry.list_agents() == {"duplicator": "resource", "echo": "test"}
        mock_eps.assert_called_once_with(group="testsys.agents")

    def test_discover_skips_broken_entry_points(self, caplog):
        eps = [
            _entry_point("broken", error=ImportError("no module")),
            _entry_point("not-an-agent", loaded=object),
            _entry_point("echo", EchoTestAgent),
        ]
        with patch("testsys.agents.registry.entry_points", return_value=eps):
            registry = AgentRegistry()
            agents = registry.discover_agents()
        assert list(agents) == ["echo"]
        assert "Failed to load agent broken" in caplog.text
        assert "Entry point not-an-agent is not an agent class" in caplog.text

    def test_discover_failure_is_logged(self, caplog):
        with patch(
            "testsys.agents.registry.entry_points", side_effect=RuntimeError("metadata broken")
        ):
            registry = AgentRegistry()
            assert registry.discover_agents() == {}
        assert "Failed to discover agents" in caplog.text

    def test_manual_registration_wins_over_discovery(self):
        eps = [_entry_point("echo", EchoTestAgent)]
        registry = AgentRegistry()
        registry.register_agent(ConcreteTestAgent, name="echo")
        with patch("testsys.agents.registry.entry_points", return_value=eps):
            assert isinstance(registry.get_test_agent("echo"), ConcreteTestAgent)

    def test_discovers_once(self):
        with patch("testsys.agents.registry.entry_points", return_value=[]) as mock_eps:
            registry = AgentRegistry()
            registry.list_agents()
            registry.get_test_agent("echo")
        mock_eps.assert_called_once()
