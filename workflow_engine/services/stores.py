"""
In-memory definition source and execution sink.

Used by the CLI and by tests. Executions are stored as snapshots so a
record saved at creation is not rewritten by later in-place mutation.
"""

import copy
from typing import Dict, List, Optional

from ..models.execution import JobExecution
from ..models.job import Job, JobGroup
from ..utils.logger import get_logger


class InMemoryJobStore:
    """Definition source plus execution sink held in process memory."""

    def __init__(self):
        self._jobs: Dict[int, Job] = {}
        self._groups: Dict[int, JobGroup] = {}
        self._executions: Dict[str, JobExecution] = {}
        self._history: Dict[int, List[str]] = {}
        self.save_count = 0
        self.logger = get_logger(__name__)

    def add_job(self, job: Job):
        self._jobs[job.job_id] = job

    def add_job_group(self, group: JobGroup):
        self._groups[group.group_id] = group
        for job in group.jobs:
            self.add_job(job)

    async def get_job(self, job_id: int) -> Optional[Job]:
        return self._jobs.get(job_id)

    async def get_job_group(self, group_id: int) -> Optional[JobGroup]:
        return self._groups.get(group_id)

    async def save_execution(self, execution: JobExecution) -> bool:
        """Store a snapshot of the execution record."""
        if execution.execution_id not in self._executions:
            self._history.setdefault(execution.job_id, []).append(execution.execution_id)
        self._executions[execution.execution_id] = copy.deepcopy(execution)
        self.save_count += 1
        self.logger.debug("Saved execution", extra={
            "execution_id": execution.execution_id,
            "status": execution.status.value
        })
        return True

    async def get_execution(self, execution_id: str) -> Optional[JobExecution]:
        return self._executions.get(execution_id)

    async def list_executions(self, job_id: int, limit: int = 50) -> List[JobExecution]:
        """Most recent executions of a job first."""
        ids = self._history.get(job_id, [])
        return [self._executions[i] for i in reversed(ids)][:limit]
