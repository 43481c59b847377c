"""
Host-side execution manager.

Starts job executions as independent asyncio tasks, each with its own
cancellation token, and optionally bounds how many run at once.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, TYPE_CHECKING
from uuid import uuid4

from ..core.cancellation import CancellationToken
from ..core.exceptions import ExecutionNotFoundError
from ..models.execution import JobExecution
from ..models.job import Job
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..core.orchestrator import JobOrchestrator, ProgressObserver


@dataclass
class _Run:
    job: Job
    token: CancellationToken
    task: Optional["asyncio.Task[JobExecution]"] = None
    execution: Optional[JobExecution] = None


class ExecutionManager:
    """
    Tracks submitted executions.

    Concurrency policy belongs to the host: by default runs are unbounded;
    ``max_concurrent_jobs`` queues runs behind a semaphore. Only the most
    recent ``max_retained`` terminal records are kept for lookup.
    """

    def __init__(
        self,
        orchestrator: "JobOrchestrator",
        max_concurrent_jobs: Optional[int] = None,
        max_retained: int = 1000
    ):
        self.orchestrator = orchestrator
        self.max_concurrent_jobs = max_concurrent_jobs
        self.max_retained = max(max_retained, 1)
        self._semaphore = asyncio.Semaphore(max_concurrent_jobs) if max_concurrent_jobs else None
        self._active: Dict[str, _Run] = {}
        self._finished: "OrderedDict[str, JobExecution]" = OrderedDict()
        self.logger = get_logger(__name__)

    async def submit(
        self,
        job: Job,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional["ProgressObserver"] = None
    ) -> str:
        """
        Start executing a job in the background.

        Args:
            job: Job to execute
            cancellation: Optional parent token; the run gets a linked child token
            progress: Optional progress observer for this run

        Returns:
            The execution ID of the new run
        """
        execution_id = str(uuid4())
        token = cancellation.create_linked() if cancellation is not None else CancellationToken()

        run = _Run(job=job, token=token)
        run.task = asyncio.create_task(self._run(run, progress, execution_id))
        self._active[execution_id] = run
        run.task.add_done_callback(lambda t, eid=execution_id: self._on_done(eid, run))

        self.logger.info("Execution submitted", extra={
            "execution_id": execution_id,
            "job_id": job.job_id,
            "active_executions": len(self._active)
        })
        return execution_id

    async def _run(self, run: _Run, progress, execution_id: str) -> JobExecution:
        def keep(record: JobExecution):
            run.execution = record

        if self._semaphore is None:
            return await self.orchestrator.execute_job(
                run.job, run.token, progress, execution_id=execution_id, on_created=keep
            )

        async with self._semaphore:
            return await self.orchestrator.execute_job(
                run.job, run.token, progress, execution_id=execution_id, on_created=keep
            )

    def _on_done(self, execution_id: str, run: _Run):
        self._active.pop(execution_id, None)
        run.token.detach()

        task = run.task
        if task.cancelled():
            record = self._settle(run, execution_id, "Execution was cancelled by the host", cancelled=True)
        elif task.exception() is not None:
            self.logger.error("Execution ended with an unexpected error", extra={
                "execution_id": execution_id
            }, exc_info=task.exception())
            record = self._settle(run, execution_id, f"Execution ended with an unexpected error: {task.exception()}")
        else:
            record = task.result()

        run.execution = record
        self._finished[execution_id] = record
        while len(self._finished) > self.max_retained:
            self._finished.popitem(last=False)

    def _settle(self, run: _Run, execution_id: str, reason: str, cancelled: bool = False) -> JobExecution:
        """Terminal record for a run that never returned one (host cancel or crash)."""
        record = run.execution
        if record is None:
            # Cancelled while queued behind the semaphore
            record = JobExecution(
                job_id=run.job.job_id,
                total_tasks=len(run.job.get_active_tasks_ordered()),
                execution_id=execution_id
            )
        if not record.is_finished():
            if cancelled:
                record.cancel(reason)
            else:
                record.fail(reason)
        return record

    async def cancel(self, execution_id: str, reason: Optional[str] = None) -> bool:
        """
        Request cancellation of a running execution.

        Returns:
            False if the execution already finished

        Raises:
            ExecutionNotFoundError: if the ID is unknown
        """
        run = self._active.get(execution_id)
        if run is None:
            if execution_id in self._finished:
                return False
            raise ExecutionNotFoundError(execution_id)

        self.logger.info("Cancelling execution", extra={"execution_id": execution_id})
        run.token.cancel(reason or "Execution cancelled on request")
        return True

    async def wait(self, execution_id: str, timeout: Optional[float] = None) -> JobExecution:
        """
        Wait for an execution to reach a terminal state and return its record.

        Raises:
            ExecutionNotFoundError: if the ID is unknown or its record was evicted
            asyncio.TimeoutError: if ``timeout`` elapses first; the run keeps going
        """
        if execution_id in self._finished:
            return self._finished[execution_id]

        run = self._active.get(execution_id)
        if run is None:
            raise ExecutionNotFoundError(execution_id)

        done, _ = await asyncio.wait({run.task}, timeout=timeout)
        if not done:
            raise asyncio.TimeoutError()
        # _on_done is registered first, so the record has been settled by now
        return run.execution

    def get_execution(self, execution_id: str) -> Optional[JobExecution]:
        return self._finished.get(execution_id)

    def active_executions(self) -> List[str]:
        return list(self._active)

    async def shutdown(self, cancel_running: bool = True):
        """Cancel (optionally) and wait for every running execution."""
        runs = list(self._active.values())
        if cancel_running:
            for run in runs:
                run.token.cancel("Execution manager shutting down")
        if runs:
            await asyncio.wait({run.task for run in runs})
