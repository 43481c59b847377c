"""Tests for background execution management."""

import asyncio

import pytest

from workflow_engine.core.cancellation import CancellationToken
from workflow_engine.core.exceptions import ExecutionNotFoundError
from workflow_engine.models.execution import JobExecutionStatus
from workflow_engine.services.execution_manager import ExecutionManager


class ConcurrencyGauge:
    """Scripted handler wrapper tracking how many runs overlap."""

    def __init__(self):
        self.current = 0
        self.peak = 0

    def enter(self):
        self.current += 1
        self.peak = max(self.peak, self.current)

    def leave(self):
        self.current -= 1


class TestExecutionManager:
    """Test submit, wait and cancel."""

    @pytest.mark.asyncio
    async def test_submit_and_wait(self, orchestrator, registry, scripted, make_job, store):
        registry.register(scripted("Step"))
        manager = ExecutionManager(orchestrator)

        execution_id = await manager.submit(make_job(["Step", "Step"]))
        execution = await manager.wait(execution_id, timeout=3)

        assert execution.execution_id == execution_id
        assert execution.status == JobExecutionStatus.COMPLETED
        assert (await store.get_execution(execution_id)).status == JobExecutionStatus.COMPLETED
        assert manager.get_execution(execution_id) is execution
        assert manager.active_executions() == []

    @pytest.mark.asyncio
    async def test_cancel_running_execution(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Slow", delay=5))
        manager = ExecutionManager(orchestrator)
        execution_id = await manager.submit(make_job(["Slow"]))
        await asyncio.sleep(0.02)

        assert await manager.cancel(execution_id, "operator request")
        execution = await manager.wait(execution_id, timeout=3)

        assert execution.status == JobExecutionStatus.CANCELLED
        assert execution.error_message == "operator request"
        assert not await manager.cancel(execution_id)

    @pytest.mark.asyncio
    async def test_parent_token_cancels_linked_runs(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Slow", delay=5))
        manager = ExecutionManager(orchestrator)
        parent = CancellationToken()
        first = await manager.submit(make_job(["Slow"], job_id=1), cancellation=parent)
        second = await manager.submit(make_job(["Slow"], job_id=2), cancellation=parent)
        await asyncio.sleep(0.02)

        parent.cancel("stop all")

        for execution_id in (first, second):
            execution = await manager.wait(execution_id, timeout=3)
            assert execution.status == JobExecutionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_execution(self, orchestrator):
        manager = ExecutionManager(orchestrator)

        with pytest.raises(ExecutionNotFoundError):
            await manager.cancel("missing")
        with pytest.raises(ExecutionNotFoundError):
            await manager.wait("missing")

    @pytest.mark.asyncio
    async def test_max_concurrent_jobs_limits_overlap(self, orchestrator, registry, scripted, make_job):
        gauge = ConcurrencyGauge()
        handler = scripted("Gauge", delay=0.02)
        original = handler.execute

        async def tracked(config, context):
            gauge.enter()
            try:
                return await original(config, context)
            finally:
                gauge.leave()

        handler.execute = tracked
        registry.register(handler)
        manager = ExecutionManager(orchestrator, max_concurrent_jobs=2)

        ids = [await manager.submit(make_job(["Gauge"], job_id=i)) for i in range(5)]
        results = [await manager.wait(execution_id, timeout=3) for execution_id in ids]

        assert all(r.status == JobExecutionStatus.COMPLETED for r in results)
        assert gauge.peak == 2

    @pytest.mark.asyncio
    async def test_wait_timeout_leaves_run_alive(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Slow", delay=0.2))
        manager = ExecutionManager(orchestrator)
        execution_id = await manager.submit(make_job(["Slow"]))

        with pytest.raises(asyncio.TimeoutError):
            await manager.wait(execution_id, timeout=0.01)

        execution = await manager.wait(execution_id, timeout=3)
        assert execution.status == JobExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Slow", delay=5))
        manager = ExecutionManager(orchestrator)
        execution_id = await manager.submit(make_job(["Slow"]))
        await asyncio.sleep(0.02)

        await asyncio.wait_for(manager.shutdown(), timeout=3)

        assert manager.active_executions() == []
        assert manager.get_execution(execution_id).status == JobExecutionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_wait_after_shutdown_returns_cancelled_record(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Slow", delay=5))
        manager = ExecutionManager(orchestrator)
        execution_id = await manager.submit(make_job(["Slow", "Slow"]))
        await asyncio.sleep(0.02)
        manager._active[execution_id].task.cancel()

        await manager.shutdown(cancel_running=False)
        execution = await manager.wait(execution_id)

        assert execution.execution_id == execution_id
        assert execution.status == JobExecutionStatus.CANCELLED
        assert execution.error_message == "Execution was cancelled by the host"
        assert not await manager.cancel(execution_id)

    @pytest.mark.asyncio
    async def test_run_cancelled_while_queued_gets_a_record(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Slow", delay=5))
        manager = ExecutionManager(orchestrator, max_concurrent_jobs=1)
        running = await manager.submit(make_job(["Slow"], job_id=1))
        queued = await manager.submit(make_job(["Slow"], job_id=2))
        await asyncio.sleep(0.02)

        manager._active[queued].task.cancel()
        execution = await manager.wait(queued, timeout=3)

        assert execution.status == JobExecutionStatus.CANCELLED
        assert execution.job_id == 2
        assert execution.current_task_index == 0
        await manager.shutdown()
        assert (await manager.wait(running)).status == JobExecutionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded_as_failed(self, orchestrator, make_job):
        manager = ExecutionManager(orchestrator)

        async def explode(*args, **kwargs):
            raise RuntimeError("sink exploded")

        orchestrator.execute_job = explode
        execution_id = await manager.submit(make_job(["Step"]))
        execution = await manager.wait(execution_id, timeout=3)

        assert execution.status == JobExecutionStatus.FAILED
        assert "sink exploded" in execution.error_message


class TestExecutionManagerRetention:
    """Test that finished runs release their references."""

    @pytest.mark.asyncio
    async def test_linked_tokens_detach_from_parent(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Step"))
        manager = ExecutionManager(orchestrator)
        parent = CancellationToken()

        for job_id in range(20):
            execution_id = await manager.submit(make_job(["Step"], job_id=job_id), cancellation=parent)
            await manager.wait(execution_id, timeout=3)

        assert parent._children == []

    @pytest.mark.asyncio
    async def test_finished_records_are_bounded(self, orchestrator, registry, scripted, make_job):
        registry.register(scripted("Step"))
        manager = ExecutionManager(orchestrator, max_retained=3)

        ids = []
        for job_id in range(5):
            ids.append(await manager.submit(make_job(["Step"], job_id=job_id)))
            await manager.wait(ids[-1], timeout=3)

        assert [manager.get_execution(eid) is not None for eid in ids] == [False, False, True, True, True]
        with pytest.raises(ExecutionNotFoundError):
            await manager.wait(ids[0])

    def test_detach_keeps_token_state(self):
        parent = CancellationToken()
        child = parent.create_linked()

        child.detach()
        parent.cancel("stop")

        assert not child.is_cancelled
        assert parent._children == []
        child.detach()
