"""
Basic usage example for the Workflow Engine

This example demonstrates how to define jobs, plug in a custom task handler,
run jobs in the background with cancellation, and observe progress.
"""

import asyncio
import tempfile
from pathlib import Path

from workflow_engine import (
    BaseTaskHandler,
    CancellationToken,
    ExecutionManager,
    InMemoryJobStore,
    Job,
    JobOrchestrator,
    JobTask,
    TaskHandlerRegistry,
    TaskResult,
    setup_logger
)


class CountWordsHandler(BaseTaskHandler):
    """Counts the words of the upstream artifact (a file path or text)."""

    task_type = "CountWords"

    async def execute(self, config, context):
        artifact = context.last_artifact
        if artifact is None:
            return TaskResult.failure("Nothing to count")

        text = Path(artifact).read_text() if Path(str(artifact)).is_file() else str(artifact)
        return TaskResult.success(output=len(text.split()))


class SlowHandler(BaseTaskHandler):
    """Sleeps for the configured number of seconds."""

    task_type = "Sleep"

    async def execute(self, config, context):
        await asyncio.sleep(float(config.get("seconds", 1)))
        return TaskResult.success()


def build_registry() -> TaskHandlerRegistry:
    registry = TaskHandlerRegistry.with_defaults()
    registry.register(CountWordsHandler())
    registry.register(SlowHandler())
    return registry


async def basic_example(workdir: Path):
    """Run a job to completion and print its execution record."""
    print("🚀 Starting Workflow Engine Example")

    store = InMemoryJobStore()
    orchestrator = JobOrchestrator(registry=build_registry(), execution_sink=store)

    job = Job(job_id=1, name="Word count", tasks=[
        JobTask.create_file_task(1, "Write text", str(workdir / "words.txt"),
                                 format="text", data="the quick brown fox"),
        JobTask(2, "Count words", "CountWords", execution_order=2)
    ])

    execution = await orchestrator.execute_job(job, progress=lambda p: print(f"📊 Progress: {p}%"))
    print(f"✅ Job finished: {execution.status.value} in {execution.duration_ms} ms")
    print(f"🔢 Word count: {execution.task_results[-1].to_dict()}")

    history = await store.list_executions(job.job_id)
    print(f"📋 Stored executions for job {job.job_id}: {len(history)}")


async def cancellation_example():
    """Submit jobs in the background and cancel one of them."""
    print("\n🔧 Background Execution Example")

    orchestrator = JobOrchestrator(registry=build_registry())
    manager = ExecutionManager(orchestrator, max_concurrent_jobs=2)
    shutdown = CancellationToken()

    quick = Job(job_id=10, name="Quick", tasks=[
        JobTask(1, "Nap", "Sleep", configuration_data={"seconds": 0.1})
    ])
    long_running = Job(job_id=11, name="Long", tasks=[
        JobTask(1, "Long nap", "Sleep", configuration_data={"seconds": 30}, timeout_seconds=60)
    ])

    quick_id = await manager.submit(quick, cancellation=shutdown)
    long_id = await manager.submit(long_running, cancellation=shutdown)
    print(f"📝 Submitted executions: {manager.active_executions()}")

    await asyncio.sleep(0.5)
    await manager.cancel(long_id, "No longer needed")

    for execution_id in (quick_id, long_id):
        execution = await manager.wait(execution_id)
        print(f"🏁 {execution_id}: {execution.status.value} ({execution.error_message or 'no error'})")

    await manager.shutdown()


async def main():
    """Run all examples."""
    print("🎯 Workflow Engine - Examples\n")
    setup_logger("workflow_engine", level="WARNING", structured=False)

    with tempfile.TemporaryDirectory() as workdir:
        await basic_example(Path(workdir))
    await cancellation_example()

    print("\n✅ All examples completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
