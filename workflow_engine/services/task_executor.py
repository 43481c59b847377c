"""
Task executor.

Runs one task against its handler with validation, a per-attempt deadline,
retry with counting, and cooperative cancellation. Handler faults are
converted into TaskResult failures and never escape to the orchestrator.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Optional

from ..core.exceptions import (
    HandlerFault, TaskCancelledError, TaskTimeoutError, TaskValidationError,
    WorkflowEngineError, is_retryable
)
from ..handlers.base import BaseTaskHandler, TaskContext
from ..models.execution import TaskResult
from ..models.job import JobTask
from ..models.step import Step
from ..utils.logger import get_logger
from .step_runner import StepRunner


BACKOFF_STRATEGIES = ("fixed", "exponential")


@dataclass
class RetryPolicy:
    """Configuration for the delay between task attempts."""
    delay_seconds: float = 0.1
    backoff: str = "fixed"
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0

    def __post_init__(self):
        if self.backoff not in BACKOFF_STRATEGIES:
            raise ValueError(f"Unknown retry backoff '{self.backoff}', expected one of {BACKOFF_STRATEGIES}")

    def get_delay(self, retry_number: int) -> float:
        """Delay before the given retry (1 for the first retry)."""
        if self.backoff == "exponential":
            delay = self.delay_seconds * (self.exponential_base ** (retry_number - 1))
        else:
            delay = self.delay_seconds
        return max(0.0, min(delay, self.max_delay_seconds))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            delay_seconds=settings.retry_delay_seconds,
            backoff=settings.retry_backoff,
            max_delay_seconds=settings.retry_max_delay_seconds
        )


class TaskExecutor:
    """
    Executes a single JobTask with its resolved handler.

    Each attempt binds the handler's execute, on_success and on_failure
    actions into a Step and runs it through the StepRunner, racing the
    task's deadline and the run's cancellation token.
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None, step_runner: Optional[StepRunner] = None):
        self.retry_policy = retry_policy or RetryPolicy()
        self.step_runner = step_runner or StepRunner()
        self.logger = get_logger(__name__)

    async def run(self, task: JobTask, handler: BaseTaskHandler, context: TaskContext) -> TaskResult:
        """
        Run a task to a terminal outcome.

        Args:
            task: Task definition (never mutated)
            handler: Handler resolved for the task's type
            context: Run context shared by the job's tasks

        Returns:
            TaskResult with outcome success, failure or cancelled
        """
        started = time.monotonic()
        context.task_name = task.name
        context.attempt = 0

        def finish(result: TaskResult, attempts: int) -> TaskResult:
            result.task_id = task.task_id
            result.task_name = task.name
            result.task_type = task.task_type
            result.attempts = attempts
            result.duration_ms = int((time.monotonic() - started) * 1000)
            return result

        if context.cancellation.is_cancelled:
            return finish(TaskResult.cancelled(TaskCancelledError(task.name).message), 0)

        try:
            config = handler.validate(task.configuration_data)
        except TaskValidationError as e:
            self.logger.error(f"Task '{task.name}' has an invalid configuration", extra={
                "task_id": task.task_id,
                "task_type": task.task_type,
                "error": e.message
            })
            return finish(TaskResult.failure(e.message, e.error_code), 0)

        max_attempts = 1 + max(task.max_retries, 0)
        last_error: WorkflowEngineError = HandlerFault(task.task_type, f"Task '{task.name}' failed")

        for attempt in range(1, max_attempts + 1):
            context.attempt = attempt
            try:
                result = await self._run_attempt(task, handler, config, context)
                if result.succeeded:
                    if attempt > 1:
                        self.logger.info(f"Task '{task.name}' succeeded on attempt {attempt}")
                    return finish(result, attempt)
                last_error = HandlerFault(task.task_type, result.error_message)
            except TaskCancelledError as e:
                self.logger.info(f"Task '{task.name}' cancelled during attempt {attempt}")
                return finish(TaskResult.cancelled(e.message), attempt)
            except TaskTimeoutError as e:
                last_error = e

            if attempt >= max_attempts or not is_retryable(last_error):
                break

            delay = self.retry_policy.get_delay(attempt)
            self.logger.warning(f"Task '{task.name}' attempt {attempt}/{max_attempts} failed, retrying in {delay:.2f}s", extra={
                "task_id": task.task_id,
                "task_type": task.task_type,
                "error_code": last_error.error_code,
                "error": last_error.message
            })

            if await self._sleep_unless_cancelled(delay, context):
                self.logger.info(f"Task '{task.name}' cancelled while waiting to retry")
                return finish(TaskResult.cancelled(TaskCancelledError(task.name).message), attempt)

        self.logger.error(f"Task '{task.name}' failed after {context.attempt} attempt(s)", extra={
            "task_id": task.task_id,
            "task_type": task.task_type,
            "error_code": last_error.error_code,
            "error": last_error.message
        })
        return finish(TaskResult.failure(last_error.message, last_error.error_code), context.attempt)

    async def _run_attempt(self, task: JobTask, handler: BaseTaskHandler, config: Any,
                           context: TaskContext) -> TaskResult:
        """
        Run one attempt as a step, bounded by the task's deadline.

        Raises:
            TaskCancelledError: if the run's cancellation token fires first
            TaskTimeoutError: if the deadline elapses first
        """
        reported = {}

        async def execute() -> bool:
            result = await handler.execute(config, context)
            reported["result"] = result
            return result.succeeded

        async def on_success() -> bool:
            return await handler.on_success(config, context)

        async def on_failure() -> bool:
            return await handler.on_failure(config, context)

        step = Step(task.task_id, task.name, execute=execute, on_success=on_success, on_failure=on_failure)
        timeout = task.timeout_seconds if task.timeout_seconds and task.timeout_seconds > 0 else None

        work = asyncio.ensure_future(self.step_runner.run_step(step))
        cancelled = asyncio.ensure_future(context.cancellation.wait())
        try:
            done, _ = await asyncio.wait(
                {work, cancelled}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancelled.cancel()
            if not work.done():
                work.cancel()
                # Let the in-flight handler observe its cancellation before returning
                await asyncio.wait({work})

        if work not in done:
            if context.cancellation.is_cancelled:
                raise TaskCancelledError(task.name)
            raise TaskTimeoutError(task.name, task.timeout_seconds)

        outcome = reported.get("result")
        if work.result():
            return outcome if outcome is not None else TaskResult.success()

        if outcome is not None and not outcome.succeeded:
            message = outcome.error_message or f"Task '{task.name}' reported failure"
        else:
            message = step.last_error or f"Task '{task.name}' failed"
        return TaskResult.failure(message, "HANDLER_FAULT")

    async def _sleep_unless_cancelled(self, delay: float, context: TaskContext) -> bool:
        """Wait out a retry delay. Returns True if cancellation arrived first."""
        if delay <= 0:
            return context.cancellation.is_cancelled
        try:
            await asyncio.wait_for(context.cancellation.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
