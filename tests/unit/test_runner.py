"""Tests for AgentRunner and LocalJobLauncher."""

import asyncio

import pytest
from conftest import make_resource, make_test

from testsys.agents.base import ResourceAgentBase, TestAgentBase
from testsys.agents.runner import AgentRunner, LocalJobLauncher
from testsys.controller.job import JobPhase, job_state
from testsys.model.exceptions import AgentError, AgentNotFoundError, ConfigResolutionError
from testsys.model.models import (
    CrdName,
    ErrorResources,
    Job,
    JobSpec,
    ObjectMeta,
    ResourceAction,
    ResourceStatus,
    TaskState,
    TestStatus,
)


class LeakyAgent(ResourceAgentBase):
    """Fails creation after provisioning something."""

    name = "leaky"

    async def create(self, ctx):
        raise AgentError("quota exceeded", ErrorResources.REMAINING)

    async def destroy(self, ctx, created_resource):
        raise AgentError("still attached")


class BrokenTestAgent(TestAgentBase):
    name = "broken"

    async def run(self, ctx):
        raise AgentError("cannot reach cluster")


class SlowTestAgent(TestAgentBase):
    name = "slow"

    async def run(self, ctx):
        await asyncio.sleep(60)


def _resource_job(name, agent="duplicator", action=ResourceAction.CREATE):
    resource = make_resource(name, agent=agent)
    return Job(
        metadata=ObjectMeta(name=resource.job_name(action)),
        spec=JobSpec(agent=resource.spec.agent, owner=resource.crd_name, action=action),
    )


def _test_job(name, agent="echo"):
    test = make_test(name, agent=agent)
    return Job(
        metadata=ObjectMeta(name=test.job_name),
        spec=JobSpec(agent=test.spec.agent, owner=CrdName.test(name)),
    )


@pytest.fixture
def runner(store, registry):
    registry.register_agent(LeakyAgent)
    registry.register_agent(BrokenTestAgent)
    registry.register_agent(SlowTestAgent)
    return AgentRunner(store, registry)


class TestResourceJobs:
    async def test_create(self, store, runner):
        await store.create(
            make_resource("dup1", configuration={"info": "hi"}, status=ResourceStatus())
        )
        await runner.run(_resource_job("dup1"))
        resource = await store.get_resource("dup1")
        assert resource.creation_task_state == TaskState.COMPLETED
        assert resource.created_resource == {"info": "hi"}

    async def test_create_resolves_templates(self, store, runner):
        await store.create(
            make_resource("db", configuration={"info": "x"}, status=ResourceStatus())
        )
        await runner.run(_resource_job("db"))
        await store.create(
            make_resource("app", configuration={"info": "${db.info}"}, status=ResourceStatus())
        )
        await runner.run(_resource_job("app"))
        assert (await store.get_resource("app")).created_resource == {"info": "x"}

    async def test_agent_error_is_recorded(self, store, runner):
        await store.create(make_resource("r1", agent="leaky", status=ResourceStatus()))
        with pytest.raises(AgentError):
            await runner.run(_resource_job("r1", agent="leaky"))
        error = (await store.get_resource("r1")).creation_error
        assert error.message == "quota exceeded"
        assert error.error_resources == ErrorResources.REMAINING

    async def test_destroy(self, store, runner):
        await store.create(
            make_resource("dup1", configuration={"info": "hi"}, status=ResourceStatus())
        )
        await runner.run(_resource_job("dup1"))
        await runner.run(_resource_job("dup1", action=ResourceAction.DESTROY))
        resource = await store.get_resource("dup1")
        assert resource.destruction_task_state == TaskState.COMPLETED

    async def test_destroy_error_is_recorded(self, store, runner):
        await store.create(make_resource("r1", agent="leaky", status=ResourceStatus()))
        with pytest.raises(AgentError):
            await runner.run(_resource_job("r1", agent="leaky", action=ResourceAction.DESTROY))
        resource = await store.get_resource("r1")
        assert resource.destruction_task_state == TaskState.ERROR
        assert resource.error(ResourceAction.DESTROY).error_resources == ErrorResources.UNKNOWN

    async def test_missing_agent(self, store, runner):
        await store.create(make_resource("r1", agent="nope", status=ResourceStatus()))
        with pytest.raises(AgentNotFoundError):
            await runner.run(_resource_job("r1", agent="nope"))
        error = (await store.get_resource("r1")).creation_error
        assert error.message == "No resource agent named 'nope'"
        assert error.error_resources == ErrorResources.CLEAR

    async def test_unresolvable_configuration(self, store, runner):
        await store.create(
            make_resource("r1", configuration={"info": "${ghost.info}"}, status=ResourceStatus())
        )
        with pytest.raises(ConfigResolutionError):
            await runner.run(_resource_job("r1"))
        resource = await store.get_resource("r1")
        assert resource.creation_task_state == TaskState.ERROR
        assert resource.creation_error.error_resources == ErrorResources.CLEAR


class TestTestJobs:
    async def test_single_pass(self, store, runner):
        await store.create(make_test("t1", status=TestStatus()))
        await runner.run(_test_job("t1"))
        status = (await store.get_test("t1")).agent_status
        assert status.task_state == TaskState.COMPLETED
        assert len(status.results) == 1

    async def test_no_retry_after_pass(self, store, runner):
        await store.create(make_test("t1", retries=5, status=TestStatus()))
        await runner.run(_test_job("t1"))
        assert len((await store.get_test("t1")).agent_status.results) == 1

    async def test_agent_error(self, store, runner):
        await store.create(make_test("t1", agent="broken", status=TestStatus()))
        with pytest.raises(AgentError):
            await runner.run(_test_job("t1", agent="broken"))
        status = (await store.get_test("t1")).agent_status
        assert status.task_state == TaskState.ERROR
        assert status.error == "cannot reach cluster"

    async def test_resource_agent_is_not_a_test_agent(self, store, runner):
        await store.create(make_test("t1", agent="duplicator", status=TestStatus()))
        with pytest.raises(AgentNotFoundError):
            await runner.run(_test_job("t1", agent="duplicator"))

    async def test_unresolvable_configuration(self, store, runner):
        await store.create(
            make_test("t1", configuration={"target": "${ghost.url}"}, status=TestStatus())
        )
        with pytest.raises(ConfigResolutionError):
            await runner.run(_test_job("t1"))
        status = (await store.get_test("t1")).agent_status
        assert status.task_state == TaskState.ERROR
        assert "ghost" in status.error


class TestLocalJobLauncher:
    async def test_success_counts(self, store, runner):
        await store.create(make_test("t1", status=TestStatus()))
        job = await store.create_job(_test_job("t1"))
        launcher = LocalJobLauncher(store, runner)

        await launcher.launch(job)
        started = await store.get_job("t1")
        assert started.status.active == 1
        assert started.status.start_time is not None

        await launcher.join()
        finished = await store.get_job("t1")
        assert (finished.status.active, finished.status.succeeded) == (0, 1)

    async def test_failure_counts(self, store, runner):
        await store.create(make_test("t1", agent="broken", status=TestStatus()))
        job = await store.create_job(_test_job("t1", agent="broken"))
        launcher = LocalJobLauncher(store, runner)

        await launcher.launch(job)
        await launcher.join()
        assert (await store.get_job("t1")).status.failed == 1

    async def test_cancel(self, store, runner):
        await store.create(make_test("t1", agent="slow", status=TestStatus()))
        job = await store.create_job(_test_job("t1", agent="slow"))
        launcher = LocalJobLauncher(store, runner)

        await launcher.launch(job)
        await asyncio.sleep(0)
        await launcher.cancel("t1")
        await launcher.join()
        assert (await store.get_job("t1")).status.active == 1

    async def test_cancel_unknown_job(self, store, runner):
        await LocalJobLauncher(store, runner).cancel("nope")

    async def test_job_deleted_while_running(self, store, runner):
        await store.create(make_test("t1", status=TestStatus()))
        job = await store.create_job(_test_job("t1"))
        launcher = LocalJobLauncher(store, runner)

        await launcher.launch(job)
        await store.delete_job("t1")
        await launcher.join()
        assert await store.get_job("t1") is None

    async def test_interrupted_job_is_failed(self, store, runner):
        await store.create(make_test("t1", agent="slow", status=TestStatus()))
        job = await store.create_job(_test_job("t1", agent="slow"))
        launcher = LocalJobLauncher(store, runner)

        await launcher.launch(job)
        await asyncio.sleep(0)
        task = launcher._tasks["t1"]
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        job = await store.get_job("t1")
        assert job.status.failed == 1
        assert job_state(job).phase == JobPhase.FAILED

    async def test_shutdown_fails_running_jobs(self, store, runner):
        for name in ("t1", "t2"):
            await store.create(make_test(name, agent="slow", status=TestStatus()))
        launcher = LocalJobLauncher(store, runner)
        for name in ("t1", "t2"):
            await launcher.launch(await store.create_job(_test_job(name, agent="slow")))
        await asyncio.sleep(0)

        await launcher.shutdown()
        assert launcher._tasks == {}
        for name in ("t1", "t2"):
            assert (await store.get_job(name)).status.failed == 1
