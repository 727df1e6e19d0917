"""Agent base classes, discovery and the in-process job runner.

This module defines the interface resource and test agents implement.
"""

from .base import AgentContext, ResourceAgentBase, TestAgentBase
from .registry import AgentRegistry
from .runner import AgentRunner, LocalJobLauncher

__all__ = [
    "AgentContext",
    "AgentRegistry",
    "AgentRunner",
    "LocalJobLauncher",
    "ResourceAgentBase",
    "TestAgentBase",
]
