"""TestSys - reconcile Tests and the Resources they run on.

TestSys watches two kinds of objects. A Resource is a piece of test
infrastructure created and destroyed by a resource agent; a Test runs a test
agent against Resources once they exist. A controller reconciles both kinds,
starting agent jobs in dependency order and tearing Resources down according
to their destruction policy.

Key components:
    - FileStore: Local object store for Tests, Resources and jobs
    - Controller: Reconciles every object on a schedule
    - TestManager: Add, list, delete and summarize objects
    - ResourceAgentBase / TestAgentBase: Base classes for agents
    - CLI: `testsys` commands wrapping the manager and controller

Quick start:
    testsys add tests.yaml
    testsys controller
    testsys status
    testsys delete --all
"""

from .agents import AgentRegistry, ResourceAgentBase, TestAgentBase
from .config import ControllerConfig
from .controller import Controller
from .manager import SelectionParams, TestManager
from .model import FileStore, Resource, Test

__version__ = "0.2.0"

__all__ = [
    "AgentRegistry",
    "Controller",
    "ControllerConfig",
    "FileStore",
    "Resource",
    "ResourceAgentBase",
    "SelectionParams",
    "Test",
    "TestAgentBase",
    "TestManager",
    "__version__",
]
