"""Decide whether a Resource's destruction policy allows tearing it down now."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..model.finalizers import Finalizer, has_finalizer
from ..model.models import DestructionPolicy, Resource, TaskState, Test, TestUserState

_logger = logging.getLogger(__name__)

_TEST_POLICIES = (DestructionPolicy.ON_TEST_COMPLETION, DestructionPolicy.ON_TEST_SUCCESS)


def referencing_tests(resource: Resource, tests: Iterable[Test]) -> list[Test]:
    """Tests whose `spec.resources` names `resource`."""
    return [test for test in tests if resource.name in test.spec.resources]


def dependent_resources(resource: Resource, resources: Iterable[Resource]) -> list[Resource]:
    """Other Resources whose `spec.depends_on` names `resource`."""
    return [
        other
        for other in resources
        if other.name != resource.name and resource.name in other.spec.depends_on
    ]


def _test_satisfies(policy: DestructionPolicy, test: Test) -> bool:
    if policy == DestructionPolicy.ON_TEST_COMPLETION:
        return test.agent_status.task_state == TaskState.COMPLETED
    return test.user_state() == TestUserState.PASSED


def is_policy_eligible(
    resource: Resource, tests: Iterable[Test], resources: Iterable[Resource]
) -> bool:
    """Whether the destruction policy calls for destroying `resource` now.

    Only the test-driven policies can make a Resource eligible. The Resource
    must have finished creation and hold its `RESOURCE` guard. No other
    Resource may depend on it, and every Test that uses it must be completed
    (OnTestCompletion) or passed (OnTestSuccess). A Resource no Test
    references is eligible as soon as nothing else depends on it.

    Args:
        resource: The Resource being reconciled
        tests: All live Tests
        resources: All live Resources

    Returns:
        True if the Resource should be destroyed
    """
    policy = resource.spec.destruction_policy
    if policy not in _TEST_POLICIES:
        return False
    if resource.creation_task_state != TaskState.COMPLETED:
        return False
    # Without the guard, deletion would skip the destruction job.
    if not has_finalizer(resource, Finalizer.RESOURCE):
        return False

    dependents = dependent_resources(resource, resources)
    if dependents:
        _logger.debug(
            "Resource '%s' is still needed by %s",
            resource.name,
            ", ".join(other.name for other in dependents),
        )
        return False

    return all(_test_satisfies(policy, test) for test in referencing_tests(resource, tests))


__all__ = ["dependent_resources", "is_policy_eligible", "referencing_tests"]
