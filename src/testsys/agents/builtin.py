"""Agents that ship with TestSys, useful for local runs and for exercising
dependencies between objects without any cloud provider.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..model.exceptions import AgentError
from ..model.models import ErrorResources, Outcome, TestResults
from .base import AgentContext, ResourceAgentBase, TestAgentBase

_logger = logging.getLogger(__name__)


class DuplicatorAgent(ResourceAgentBase):
    """Publish the `info` configuration value as the created resource.

    Lets one Resource or Test read another's output through a template such
    as `${dup1.info}`.
    """

    name = "duplicator"

    async def create(self, ctx: AgentContext) -> dict[str, Any]:
        if "info" not in ctx.configuration:
            raise AgentError("Configuration has no 'info' field", ErrorResources.CLEAR)
        memo = await ctx.get_info()
        memo["info"] = ctx.configuration["info"]
        await ctx.send_info(memo)
        return {"info": ctx.configuration["info"]}

    async def destroy(self, ctx: AgentContext, created_resource: dict[str, Any] | None) -> None:
        # Nothing to destroy.
        _logger.debug("Nothing to destroy for duplicated data %s", created_resource)


class EchoTestAgent(TestAgentBase):
    """Report the outcome named in the configuration.

    Configuration:
        outcome: pass, fail or timeout. Defaults to pass
        passOnAttempt: Report pass from this zero-based attempt on
        numTests: How many tests to count. Defaults to 1
        delaySeconds: How long to pretend to run
    """

    name = "echo"

    async def run(self, ctx: AgentContext) -> TestResults:
        config = ctx.configuration
        delay = float(config.get("delaySeconds", 0))
        if delay > 0:
            await asyncio.sleep(delay)

        outcome = Outcome(config.get("outcome", Outcome.PASS.value))
        pass_on_attempt = config.get("passOnAttempt")
        if pass_on_attempt is not None and ctx.attempt >= int(pass_on_attempt):
            outcome = Outcome.PASS

        num_tests = int(config.get("numTests", 1))
        passed = outcome == Outcome.PASS
        return TestResults(
            outcome=outcome,
            num_passed=num_tests if passed else 0,
            num_failed=0 if passed else num_tests,
            other_info=f"attempt {ctx.attempt}",
        )


__all__ = ["DuplicatorAgent", "EchoTestAgent"]
