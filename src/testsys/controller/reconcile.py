"""Reconcilers: observe an object, decide, perform exactly one side effect.

Each reconcile gathers a snapshot from the store, asks the matching action
engine for the next action and carries out that one action. It returns how
long to wait before reconciling the object again, or None when the object
is expected to be gone.

Public API (the "studs"):
    JobLauncher: Protocol for whatever runs agent jobs
    ResourceReconciler: Reconcile one Resource
    TestReconciler: Reconcile one Test
    Controller: Reconcile every object on a schedule
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Protocol, runtime_checkable

from ..config import ControllerConfig
from ..model.clients import ResourceClient, TestClient
from ..model.exceptions import ObjectExistsError
from ..model.finalizers import Finalizer
from ..model.models import (
    CrdKind,
    CrdName,
    Job,
    JobSpec,
    ObjectMeta,
    Resource,
    ResourceAction,
    ResourceError,
    Test,
)
from ..model.store import ObjectStore
from .action import ErrorKind, error_message
from .job import job_state
from .resource_action import (
    CreationAction,
    CreationStep,
    DestructionAction,
    DestructionStep,
    ResourceSnapshot,
    decide_resource_action,
)
from .test_action import TestAction, TestSnapshot, TestStep, decide_test_action

_logger = logging.getLogger(__name__)


@runtime_checkable
class JobLauncher(Protocol):
    """Runs the agent for a job record the controller created."""

    async def launch(self, job: Job) -> None:
        """Start running the job's agent."""
        ...

    async def cancel(self, name: str) -> None:
        """Stop the job's agent if it is still running."""
        ...


class _Reconciler:
    """Shared plumbing for the Resource and Test reconcilers."""

    def __init__(
        self,
        store: ObjectStore,
        config: ControllerConfig | None = None,
        launcher: JobLauncher | None = None,
    ) -> None:
        self._store = store
        self._config = config or ControllerConfig()
        self._launcher = launcher

    @property
    def requeue(self) -> float:
        return self._config.requeue_seconds

    @property
    def requeue_slow(self) -> float:
        return self._config.requeue_slow_seconds

    @property
    def job_start_grace(self) -> timedelta:
        return timedelta(seconds=self._config.job_start_grace_seconds)

    async def _start_job(self, job: Job) -> None:
        try:
            created = await self._store.create_job(job)
        except ObjectExistsError:
            _logger.debug("Job '%s' already exists", job.name)
            return
        if self._launcher is not None:
            await self._launcher.launch(created)

    async def _remove_job(self, name: str) -> None:
        if self._launcher is not None:
            await self._launcher.cancel(name)
        if not await self._store.delete_job(name):
            _logger.debug("Job '%s' was already gone", name)

    async def _reconcile_safely(self, name: str, kind: str, reconcile) -> float | None:
        try:
            return await reconcile(name)
        except Exception:
            _logger.exception("Error reconciling %s '%s'", kind, name)
            return self.requeue


class ResourceReconciler(_Reconciler):
    """Drive a Resource through creation and destruction."""

    def __init__(
        self,
        store: ObjectStore,
        config: ControllerConfig | None = None,
        launcher: JobLauncher | None = None,
    ) -> None:
        super().__init__(store, config, launcher)
        self._client = ResourceClient(store)

    async def snapshot(self, resource: Resource) -> ResourceSnapshot:
        resources = {r.name: r for r in await self._store.list_resources()}
        resources[resource.name] = resource
        return ResourceSnapshot(
            resource=resource,
            creation_job=job_state(
                await self._store.get_job(resource.job_name(ResourceAction.CREATE))
            ),
            destruction_job=job_state(
                await self._store.get_job(resource.job_name(ResourceAction.DESTROY))
            ),
            resources=resources,
            tests=await self._store.list_tests(),
            job_start_grace=self.job_start_grace,
        )

    async def reconcile(self, name: str) -> float | None:
        """Reconcile a Resource, logging any error and requeueing after it."""
        return await self._reconcile_safely(name, "resource", self.reconcile_once)

    async def reconcile_once(self, name: str) -> float | None:
        """Reconcile a Resource, letting errors propagate."""
        resource = await self._store.get_resource(name)
        if resource is None:
            _logger.debug("Resource '%s' is gone", name)
            return None
        action = decide_resource_action(await self.snapshot(resource))
        if isinstance(action, CreationAction):
            return await self._do_creation_action(resource, action)
        return await self._do_destruction_action(resource, action)

    async def _start_resource_job(self, resource: Resource, action: ResourceAction) -> None:
        job = Job(
            metadata=ObjectMeta(name=resource.job_name(action)),
            spec=JobSpec(agent=resource.spec.agent, owner=resource.crd_name, action=action),
        )
        _logger.info("Starting %s job for resource '%s'", action.value, resource.name)
        await self._start_job(job)

    async def _do_creation_action(
        self, resource: Resource, action: CreationAction
    ) -> float | None:
        step = action.step
        if step == CreationStep.INITIALIZE:
            await self._client.initialize_status(resource.name)
        elif step == CreationStep.ADD_MAIN_FINALIZER:
            await self._client.add_finalizer(resource, Finalizer.MAIN)
        elif step == CreationStep.ADD_JOB_FINALIZER:
            await self._client.add_finalizer(resource, Finalizer.CREATION_JOB)
        elif step == CreationStep.START_JOB:
            await self._start_resource_job(resource, ResourceAction.CREATE)
        elif step == CreationStep.WAIT_FOR_CREATION:
            _logger.debug("Waiting for creation of resource '%s'", resource.name)
        elif step == CreationStep.WAIT_FOR_DEPENDENCY:
            _logger.debug(
                "'%s' is waiting for dependency '%s' to be created", resource.name, action.target
            )
        elif step == CreationStep.WAIT_FOR_CONFLICT:
            _logger.debug(
                "'%s' is waiting for conflicting resource '%s' to be deleted",
                resource.name,
                action.target,
            )
        elif step == CreationStep.ADD_RESOURCE_FINALIZER:
            await self._client.add_finalizer(resource, Finalizer.RESOURCE)
        elif step == CreationStep.DONE:
            return self.requeue_slow
        else:
            await self._handle_error_state(resource, ResourceAction.CREATE, action.error)
            return self.requeue_slow
        return self.requeue

    async def _do_destruction_action(
        self, resource: Resource, action: DestructionAction
    ) -> float | None:
        step = action.step
        if step == DestructionStep.START_RESOURCE_DELETION:
            _logger.info("Destruction policy calls for deleting resource '%s'", resource.name)
            await self._store.delete(resource.crd_name)
        elif step == DestructionStep.REMOVE_CREATION_JOB:
            await self._remove_job(resource.job_name(ResourceAction.CREATE))
        elif step == DestructionStep.REMOVE_CREATION_JOB_FINALIZER:
            await self._client.remove_finalizer(resource, Finalizer.CREATION_JOB)
        elif step == DestructionStep.START_DESTRUCTION_JOB:
            await self._start_resource_job(resource, ResourceAction.DESTROY)
        elif step == DestructionStep.WAIT:
            _logger.debug("Waiting for destruction of resource '%s'", resource.name)
        elif step == DestructionStep.REMOVE_DESTRUCTION_JOB:
            await self._remove_job(resource.job_name(ResourceAction.DESTROY))
        elif step == DestructionStep.REMOVE_RESOURCE_FINALIZER:
            await self._client.remove_finalizer(resource, Finalizer.RESOURCE)
        elif step == DestructionStep.REMOVE_MAIN_FINALIZER:
            await self._client.remove_finalizer(resource, Finalizer.MAIN)
            return None
        else:
            await self._handle_error_state(resource, ResourceAction.DESTROY, action.error)
            return self.requeue_slow
        return self.requeue

    async def _handle_error_state(
        self, resource: Resource, action: ResourceAction, kind: ErrorKind | None
    ) -> None:
        if kind == ErrorKind.ZOMBIE:
            _logger.warning(
                "Resource '%s' still exists after its main finalizer was removed", resource.name
            )
            return
        phase = "Creation" if action == ResourceAction.CREATE else "Destruction"
        message = (
            f"{phase} error state for resource '{resource.name}': "
            f"{error_message(kind or ErrorKind.TASK_FAILED)}"
        )
        _logger.error("%s", message)
        if resource.error(action) is None:
            await self._client.send_error(resource.name, action, ResourceError(message=message))


class TestReconciler(_Reconciler):
    """Drive a Test from waiting on its resources to running its agent."""

    __test__ = False

    def __init__(
        self,
        store: ObjectStore,
        config: ControllerConfig | None = None,
        launcher: JobLauncher | None = None,
    ) -> None:
        super().__init__(store, config, launcher)
        self._client = TestClient(store)

    async def snapshot(self, test: Test) -> TestSnapshot:
        tests = {t.name: t for t in await self._store.list_tests()}
        tests[test.name] = test
        return TestSnapshot(
            test=test,
            job=job_state(await self._store.get_job(test.job_name)),
            tests=tests,
            resources={r.name: r for r in await self._store.list_resources()},
            job_start_grace=self.job_start_grace,
        )

    async def reconcile(self, name: str) -> float | None:
        """Reconcile a Test, logging any error and requeueing after it."""
        return await self._reconcile_safely(name, "test", self.reconcile_once)

    async def reconcile_once(self, name: str) -> float | None:
        """Reconcile a Test, letting errors propagate."""
        test = await self._store.get_test(name)
        if test is None:
            _logger.debug("Test '%s' is gone", name)
            return None
        action = decide_test_action(await self.snapshot(test))
        return await self._do_action(test, action)

    async def _do_action(self, test: Test, action: TestAction) -> float | None:
        step = action.step
        if step == TestStep.INITIALIZE:
            await self._client.initialize_status(test.name)
        elif step == TestStep.ADD_MAIN_FINALIZER:
            await self._client.add_finalizer(test, Finalizer.MAIN)
        elif step == TestStep.WAIT_FOR_DEPENDENCY:
            _logger.debug("Test '%s' is waiting for test '%s'", test.name, action.target)
        elif step == TestStep.WAIT_FOR_RESOURCES:
            _logger.debug("Test '%s' is waiting for its resources", test.name)
        elif step == TestStep.REGISTER_RESOURCE_CREATION_ERROR:
            _logger.error("Resource error for test '%s': %s", test.name, action.message)
            await self._client.send_resource_error(test.name, action.message or "")
            return self.requeue_slow
        elif step == TestStep.ADD_JOB_FINALIZER:
            await self._client.add_finalizer(test, Finalizer.TEST_JOB)
        elif step == TestStep.START_TEST:
            _logger.info("Starting test job '%s'", test.job_name)
            await self._start_job(
                Job(
                    metadata=ObjectMeta(name=test.job_name),
                    spec=JobSpec(agent=test.spec.agent, owner=CrdName.test(test.name)),
                )
            )
        elif step == TestStep.WAIT_FOR_TEST:
            _logger.debug("Test '%s' is running", test.name)
        elif step == TestStep.DELETE_JOB:
            await self._remove_job(test.job_name)
        elif step == TestStep.REMOVE_JOB_FINALIZER:
            await self._client.remove_finalizer(test, Finalizer.TEST_JOB)
        elif step == TestStep.REMOVE_MAIN_FINALIZER:
            await self._client.remove_finalizer(test, Finalizer.MAIN)
            return None
        elif step == TestStep.TEST_DONE:
            _logger.debug("Test '%s' is done", test.name)
            return self.requeue_slow
        else:
            await self._handle_error_state(test, action)
            return self.requeue_slow
        return self.requeue

    async def _handle_error_state(self, test: Test, action: TestAction) -> None:
        if action.error == ErrorKind.ZOMBIE:
            _logger.warning(
                "Test '%s' still exists after its main finalizer was removed", test.name
            )
            return
        _logger.error("Error state for test '%s': %s", test.name, action.message)
        if action.error in (ErrorKind.TASK_FAILED, ErrorKind.RESOURCE_FAILED):
            return
        if test.agent_status.error is None:
            await self._client.send_agent_error(test.name, action.message or "")


class Controller:
    """Reconcile every Resource and Test, honouring each object's requeue delay.

    Objects seen for the first time are due immediately. An object whose
    reconcile returned None is forgotten; if it still exists it is picked
    up again as new on the next pass.
    Objects that no longer exist are forgotten on the next pass.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: ControllerConfig | None = None,
        launcher: JobLauncher | None = None,
    ) -> None:
        self._store = store
        self._config = config or ControllerConfig()
        self.resources = ResourceReconciler(store, self._config, launcher)
        self.tests = TestReconciler(store, self._config, launcher)
        self._due: dict[CrdName, float] = {}

    async def run_once(self, force: bool = False) -> int:
        """Reconcile every object that is due.

        Args:
            force: Reconcile every object regardless of its requeue delay

        Returns:
            Number of objects reconciled
        """
        loop = asyncio.get_running_loop()
        now = loop.time()
        names = [r.crd_name for r in await self._store.list_resources()]
        names += [t.crd_name for t in await self._store.list_tests()]
        for gone in self._due.keys() - set(names):
            del self._due[gone]
        due = [name for name in names if force or self._due.get(name, now) <= now]

        async def reconcile(name: CrdName) -> None:
            reconciler = self.resources if name.kind == CrdKind.RESOURCE else self.tests
            delay = await reconciler.reconcile(name.name)
            if delay is None:
                self._due.pop(name, None)
            else:
                self._due[name] = loop.time() + delay

        await asyncio.gather(*(reconcile(name) for name in due))
        return len(due)

    async def run(self, stop: asyncio.Event) -> None:
        """Reconcile on an interval until `stop` is set."""
        _logger.info("Controller started")
        while not stop.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(
                    stop.wait(), timeout=self._config.controller_interval_seconds
                )
            except asyncio.TimeoutError:
                pass
        _logger.info("Controller stopped")


__all__ = ["Controller", "JobLauncher", "ResourceReconciler", "TestReconciler"]
