"""
JobOrchestrator: sequential execution of a job's tasks

Runs the active tasks of a job in execution order through the task
executor, keeps the execution record's progress current, applies the
abort-on-first-failure policy and finalizes the record exactly once.
"""

import asyncio
import inspect
from typing import Any, Callable, List, Optional, Protocol, Set, Union

from ..handlers.base import TaskContext
from ..handlers.registry import TaskHandlerRegistry
from ..models.execution import JobExecution, JobExecutionStatus, TaskOutcome, TaskResult
from ..models.job import Job, JobGroup, JobTask
from ..services.task_executor import RetryPolicy, TaskExecutor
from ..utils.logger import get_logger, LoggerContext
from .cancellation import CancellationToken
from .exceptions import JobDefinitionError, UnknownTaskTypeError, error_registry


ESTIMATED_MS_PER_TASK = 100

INVALID_JOB_MESSAGE = "Job validation failed - job is not valid for execution"

ProgressObserver = Callable[[int], Any]


class DefinitionSource(Protocol):
    async def get_job(self, job_id: int) -> Optional[Job]:
        ...


class ExecutionSink(Protocol):
    async def save_execution(self, execution: JobExecution) -> Any:
        ...


class JobOrchestrator:
    """
    Executes jobs and job groups.

    One orchestrator can run many executions concurrently; each run owns
    its own JobExecution record and TaskContext.
    """

    def __init__(
        self,
        registry: Optional[TaskHandlerRegistry] = None,
        task_executor: Optional[TaskExecutor] = None,
        execution_sink: Optional[ExecutionSink] = None,
        definition_source: Optional[DefinitionSource] = None,
        progress_observer: Optional[ProgressObserver] = None,
        settings=None
    ):
        """
        Initialize the JobOrchestrator.

        Args:
            registry: Task handler registry; built-in handlers when omitted
            task_executor: Task executor; built from settings when omitted
            execution_sink: Persists execution records (fire-and-forget)
            definition_source: Supplies jobs by identifier for ``execute_job_by_id``
            progress_observer: Default observer of integer progress updates
            settings: Optional EngineSettings
        """
        strict = settings.strict_task_types if settings is not None else False
        self.registry = registry or TaskHandlerRegistry.with_defaults(strict=strict)

        if task_executor is None:
            policy = RetryPolicy.from_settings(settings) if settings is not None else RetryPolicy()
            task_executor = TaskExecutor(retry_policy=policy)
        self.task_executor = task_executor

        self.execution_sink = execution_sink
        self.definition_source = definition_source
        self.progress_observer = progress_observer
        self._observer_tasks: Set["asyncio.Future[Any]"] = set()
        self.logger = get_logger(__name__)

    def can_execute_job(self, job: Optional[Job]) -> bool:
        """A job can run when it is named and active."""
        return job is not None and job.validate()

    def estimate_execution_time_ms(self, job: Job) -> int:
        if job is None:
            raise JobDefinitionError("job must not be None")
        return ESTIMATED_MS_PER_TASK * len(job.get_active_tasks_ordered())

    async def execute_job(
        self,
        job: Job,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional[ProgressObserver] = None,
        execution_id: Optional[str] = None,
        on_created: Optional[Callable[[JobExecution], None]] = None
    ) -> JobExecution:
        """
        Execute a job's active tasks in order.

        Args:
            job: Job definition (never mutated)
            cancellation: Cancellation signal for this run
            progress: Observer for this run, in addition to the default one
            execution_id: Identifier for the new execution record; generated when omitted
            on_created: Called with the record as soon as it exists, before any task runs

        Returns:
            The terminal JobExecution record

        Raises:
            JobDefinitionError: if ``job`` is None
        """
        if job is None:
            raise JobDefinitionError("job must not be None")

        tasks = job.get_active_tasks_ordered()
        execution = JobExecution(job_id=job.job_id, total_tasks=len(tasks))
        if execution_id:
            execution.execution_id = execution_id
        if on_created is not None:
            on_created(execution)
        cancellation = cancellation or CancellationToken()
        observers = [o for o in (self.progress_observer, progress) if o is not None]

        with LoggerContext(job_id=job.job_id, execution_id=execution.execution_id):
            if not self.can_execute_job(job):
                self.logger.warning(f"Job '{job.name}' is not valid for execution", extra={
                    "is_active": job.is_active
                })
                await self._persist(execution)
                execution.fail(INVALID_JOB_MESSAGE)
                await self._persist(execution)
                return execution

            execution.start()
            await self._persist(execution)

            self.logger.info(f"Starting execution of job '{job.name}'", extra={
                "total_tasks": execution.total_tasks,
                "estimated_ms": self.estimate_execution_time_ms(job)
            })

            try:
                await self._run_tasks(job, tasks, execution, cancellation, observers)
            except asyncio.CancelledError:
                if not execution.is_finished():
                    execution.cancel("Execution was cancelled by the host")
                    self._log_outcome(job, execution)
                    await self._persist(execution)
                raise

            self._log_outcome(job, execution)
            await self._persist(execution)
            return execution

    async def _run_tasks(
        self,
        job: Job,
        tasks: List[JobTask],
        execution: JobExecution,
        cancellation: CancellationToken,
        observers: List[ProgressObserver]
    ):
        context = TaskContext(
            cancellation=cancellation,
            job_id=job.job_id,
            execution_id=execution.execution_id
        )

        for task in tasks:
            if cancellation.is_cancelled:
                execution.cancel(cancellation.reason)
                return

            with LoggerContext(task_name=task.name):
                result = await self._run_task(task, context)

            execution.record_task_result(result)

            if result.outcome == TaskOutcome.CANCELLED:
                execution.cancel(cancellation.reason or result.error_message)
                return

            execution.advance_to_next_task()
            self._notify(observers, execution.progress_percentage)

            if result.succeeded:
                context.publish(task.name, result.output)
                continue

            error_message = f"Task '{task.name}' failed: {result.error_message}"
            if task.continue_on_failure:
                self.logger.warning(f"{error_message}; continuing", extra={
                    "task_id": task.task_id,
                    "error_code": result.error_code
                })
                continue

            execution.fail(error_message)
            return

        execution.complete()
        if not tasks:
            self._notify(observers, execution.progress_percentage)

    async def _run_task(self, task: JobTask, context: TaskContext) -> TaskResult:
        try:
            handler = self.registry.resolve(task.task_type)
        except UnknownTaskTypeError as e:
            error_registry.record_error(e)
            self.logger.error(e.message, extra={"task_id": task.task_id})
            return TaskResult.failure(
                e.message, e.error_code,
                task_id=task.task_id, task_name=task.name, task_type=task.task_type
            )

        self.logger.info(f"Executing task '{task.name}'", extra={
            "task_id": task.task_id,
            "task_type": task.task_type,
            "handler": handler.handler_name
        })
        return await self.task_executor.run(task, handler, context)

    async def execute_job_by_id(
        self,
        job_id: int,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional[ProgressObserver] = None
    ) -> JobExecution:
        """Load a job from the definition source and execute it."""
        if self.definition_source is None:
            raise JobDefinitionError("no definition source configured", job_id)

        job = await self.definition_source.get_job(job_id)
        if job is None:
            raise JobDefinitionError(f"Job with ID {job_id} not found", job_id)
        return await self.execute_job(job, cancellation, progress)

    async def execute_job_group(
        self,
        group: JobGroup,
        cancellation: Optional[CancellationToken] = None
    ) -> List[JobExecution]:
        """
        Execute the active jobs of a group in order.

        Stops at the first job whose execution does not complete.
        """
        if group is None:
            raise JobDefinitionError("job group must not be None")

        executions = []
        for job in group.get_active_jobs_ordered():
            execution = await self.execute_job(job, cancellation)
            executions.append(execution)

            if execution.status != JobExecutionStatus.COMPLETED:
                self.logger.warning(f"Job group '{group.name}' stopped at job '{job.name}'", extra={
                    "group_id": group.group_id,
                    "job_id": job.job_id,
                    "status": execution.status.value
                })
                break

        return executions

    def _log_outcome(self, job: Job, execution: JobExecution):
        extra = {
            "job_id": job.job_id,
            "execution_id": execution.execution_id,
            "status": execution.status.value,
            "current_task_index": execution.current_task_index,
            "total_tasks": execution.total_tasks,
            "duration_ms": execution.duration_ms
        }
        if execution.status == JobExecutionStatus.COMPLETED:
            self.logger.info(f"Job '{job.name}' completed", extra=extra)
        elif execution.status == JobExecutionStatus.CANCELLED:
            self.logger.info(f"Job '{job.name}' cancelled", extra=extra)
        else:
            self.logger.error(f"Job '{job.name}' failed: {execution.error_message}", extra=extra)

    async def _persist(self, execution: JobExecution):
        if self.execution_sink is None:
            return
        try:
            await self.execution_sink.save_execution(execution)
        except Exception as e:
            # Persistence failures never change the execution outcome
            error_registry.record_error(e)
            self.logger.error("Failed to persist execution", extra={
                "execution_id": execution.execution_id,
                "status": execution.status.value
            }, exc_info=True)

    def _notify(self, observers: List[ProgressObserver], percentage: int):
        # Delivered on a later loop iteration; the run never waits on an observer
        loop = asyncio.get_running_loop()
        for observer in observers:
            loop.call_soon(self._deliver, observer, percentage)

    def _deliver(self, observer: ProgressObserver, percentage: int):
        try:
            outcome = observer(percentage)
            if inspect.isawaitable(outcome):
                future = asyncio.ensure_future(outcome)
                self._observer_tasks.add(future)
                future.add_done_callback(self._observer_done)
        except Exception:
            self.logger.warning("Progress observer raised", exc_info=True)

    def _observer_done(self, future: "asyncio.Future[Any]"):
        self._observer_tasks.discard(future)
        if not future.cancelled() and future.exception() is not None:
            self.logger.warning("Progress observer raised", exc_info=future.exception())


def create_orchestrator(
    settings=None,
    registry: Optional[TaskHandlerRegistry] = None,
    execution_sink: Optional[Union[ExecutionSink, Any]] = None,
    definition_source: Optional[DefinitionSource] = None
) -> JobOrchestrator:
    """Build an orchestrator from engine settings."""
    return JobOrchestrator(
        registry=registry,
        execution_sink=execution_sink,
        definition_source=definition_source,
        settings=settings
    )
