"""Run agent jobs.

AgentRunner performs the agent side of one job: it reports progress in the
owner's status, resolves the configuration, calls the agent and publishes
the outcome. LocalJobLauncher runs those jobs as asyncio tasks and keeps the
job's container counts up to date, standing in for a cluster job runner.

Public API (the "studs"):
    AgentRunner: Execute one resource or test job
    LocalJobLauncher: JobLauncher running jobs in-process
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..model.clients import ResourceClient, TestClient
from ..model.exceptions import (
    AgentError,
    AgentNotFoundError,
    ConfigResolutionError,
    ObjectNotFoundError,
)
from ..model.models import (
    CrdKind,
    ErrorResources,
    Job,
    JobStatus,
    Outcome,
    ResourceAction,
    ResourceError,
    TaskState,
)
from ..model.store import ObjectStore
from .base import AgentContext
from .registry import AgentRegistry

_logger = logging.getLogger(__name__)


class AgentRunner:
    """Execute the agent named by a job on behalf of its owner."""

    def __init__(self, store: ObjectStore, registry: AgentRegistry | None = None) -> None:
        self._store = store
        self._registry = registry or AgentRegistry()
        self._resources = ResourceClient(store)
        self._tests = TestClient(store)

    async def run(self, job: Job) -> None:
        """Run a job to completion.

        Raises:
            AgentError: If the agent failed; the failure is already in status
            AgentNotFoundError: If no agent of the job's name is registered
            ConfigResolutionError: If the configuration could not be resolved
        """
        if job.spec.owner.kind == CrdKind.RESOURCE:
            await self.run_resource_job(job)
        else:
            await self.run_test_job(job)

    async def run_resource_job(self, job: Job) -> None:
        name = job.spec.owner.name
        action = job.spec.action or ResourceAction.CREATE
        await self._resources.send_task_state(name, action, TaskState.RUNNING)

        agent = self._registry.get_resource_agent(job.spec.agent.name)
        if agent is None:
            error = AgentNotFoundError(f"No resource agent named '{job.spec.agent.name}'")
            await self._resources.send_error(
                name,
                action,
                ResourceError(message=str(error), error_resources=ErrorResources.CLEAR),
            )
            raise error

        try:
            request = await self._resources.get_resource_request(name, action)
        except ConfigResolutionError as e:
            await self._resources.send_error(
                name, action, ResourceError(message=str(e), error_resources=ErrorResources.CLEAR)
            )
            raise

        ctx = AgentContext(
            request.configuration,
            request.secrets,
            get_info=lambda: self._resources.get_agent_info(name),
            send_info=lambda info: self._resources.send_agent_info(name, info),
        )
        try:
            if action == ResourceAction.CREATE:
                created = await agent.create(ctx)
                await self._resources.send_creation_success(name, created)
            else:
                await agent.destroy(ctx, request.created_resource)
                await self._resources.send_task_state(name, action, TaskState.COMPLETED)
        except AgentError as e:
            await self._resources.send_error(
                name, action, ResourceError(message=e.message, error_resources=e.error_resources)
            )
            raise
        _logger.info("Resource agent '%s' finished %s of '%s'", agent.name, action.value, name)

    async def run_test_job(self, job: Job) -> None:
        """Run a test, rerunning it up to `spec.retries` times until it passes."""
        name = job.spec.owner.name
        await self._tests.send_task_state(name, TaskState.RUNNING)

        agent = self._registry.get_test_agent(job.spec.agent.name)
        if agent is None:
            error = AgentNotFoundError(f"No test agent named '{job.spec.agent.name}'")
            await self._tests.send_agent_error(name, str(error))
            raise error

        try:
            configuration = await self._tests.resolve_configuration(name)
        except ConfigResolutionError as e:
            await self._tests.send_agent_error(name, str(e))
            raise

        test = await self._tests.get(name)
        attempts = (test.spec.retries or 0) + 1
        for attempt in range(attempts):
            ctx = AgentContext(
                configuration,
                test.spec.agent.secrets,
                get_info=lambda: self._tests.get_agent_info(name),
                send_info=lambda info: self._tests.send_agent_info(name, info),
                attempt=attempt,
            )
            try:
                results = await agent.run(ctx)
            except AgentError as e:
                await self._tests.send_agent_error(name, e.message)
                raise
            await self._tests.send_test_results(name, results)
            _logger.info(
                "Test '%s' attempt %d of %d: %s", name, attempt + 1, attempts, results.outcome.value
            )
            if results.outcome == Outcome.PASS:
                break
        await self._tests.send_test_done(name)


class LocalJobLauncher:
    """Run jobs as asyncio tasks on the current event loop.

    A job whose task is cancelled other than through cancel(), for example
    when the event loop shuts down, is recorded as failed so that a later
    controller does not wait on it forever.
    """

    def __init__(self, store: ObjectStore, runner: AgentRunner) -> None:
        self._store = store
        self._runner = runner
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._removing: set[str] = set()

    async def launch(self, job: Job) -> None:
        await self._set_status(job.name, JobStatus(active=1, start_time=datetime.now(timezone.utc)))
        self._tasks[job.name] = asyncio.create_task(self._run(job), name=f"job-{job.name}")

    async def cancel(self, name: str) -> None:
        """Stop a job that is being removed, leaving its status as it was."""
        task = self._tasks.pop(name, None)
        if task is None or task.done():
            return
        self._removing.add(name)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            _logger.info("Cancelled job '%s'", name)
        finally:
            self._removing.discard(name)

    async def join(self) -> None:
        """Wait for every launched job to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Interrupt every running job, recording each one as failed."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, job: Job) -> None:
        try:
            await self._runner.run(job)
        except asyncio.CancelledError:
            if job.name not in self._removing:
                _logger.warning("Job '%s' was interrupted", job.name)
                await self._set_status(job.name, JobStatus(failed=1))
            raise
        except Exception:
            _logger.exception("Job '%s' failed", job.name)
            await self._set_status(job.name, JobStatus(failed=1))
        else:
            await self._set_status(job.name, JobStatus(succeeded=1))
        finally:
            self._tasks.pop(job.name, None)

    async def _set_status(self, name: str, status: JobStatus) -> None:
        try:
            await self._store.update_job_status(name, status)
        except ObjectNotFoundError:
            _logger.debug("Job '%s' was deleted before its status was updated", name)


__all__ = ["AgentRunner", "LocalJobLauncher"]
