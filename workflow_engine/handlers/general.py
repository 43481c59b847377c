"""General no-op handler for custom and manual tasks."""

from typing import Any

from .base import BaseTaskHandler, TaskContext
from ..models.execution import TaskResult
from ..models.job import TaskType


class GeneralTaskHandler(BaseTaskHandler):
    """Always succeeds. Configuration is accepted as-is."""

    task_type = TaskType.GENERAL.value

    async def execute(self, config: Any, context: TaskContext) -> TaskResult:
        self.logger.info(f"General task '{context.task_name}' completed", extra={
            "job_id": context.job_id,
            "execution_id": context.execution_id
        })
        return TaskResult.success()
