"""
Legacy linear workflow executor.

A Workflow is folded into a Job and run by the JobOrchestrator, so legacy
workflows get the same handler dispatch, retry and progress semantics as
jobs. Runtime Step sequences can still be run directly.
"""

import time
from typing import List, Optional, TYPE_CHECKING

from ..core.cancellation import CancellationToken
from ..core.exceptions import JobDefinitionError
from ..models.execution import JobExecutionStatus
from ..models.step import Step, Workflow
from ..utils.logger import get_logger
from .step_runner import StepRunner

if TYPE_CHECKING:
    from ..core.orchestrator import JobOrchestrator, ProgressObserver


ESTIMATED_STEP_MS = 100
STEP_OVERHEAD_MS = 10


class WorkflowExecutor:
    """Runs legacy workflows and plain step sequences."""

    def __init__(self, orchestrator: Optional["JobOrchestrator"] = None, step_runner: Optional[StepRunner] = None):
        if orchestrator is None:
            from ..core.orchestrator import JobOrchestrator
            orchestrator = JobOrchestrator()
        self.orchestrator = orchestrator
        self.step_runner = step_runner or StepRunner()
        self.logger = get_logger(__name__)

    def can_execute_workflow(self, workflow: Optional[Workflow]) -> bool:
        return workflow is not None and workflow.validate() and workflow.has_steps()

    def estimate_execution_time_ms(self, workflow: Workflow) -> int:
        if workflow is None:
            raise JobDefinitionError("workflow must not be None")
        return workflow.get_step_count() * (ESTIMATED_STEP_MS + STEP_OVERHEAD_MS)

    async def execute_workflow(
        self,
        workflow: Workflow,
        cancellation: Optional[CancellationToken] = None,
        progress: Optional["ProgressObserver"] = None
    ) -> bool:
        """
        Execute a workflow.

        Returns:
            True only if every step succeeded
        """
        if workflow is None:
            raise JobDefinitionError("workflow must not be None")

        if not self.can_execute_workflow(workflow):
            self.logger.warning(f"Workflow '{workflow.name}' is not valid for execution", extra={
                "workflow_id": workflow.workflow_id,
                "step_count": workflow.get_step_count()
            })
            return False

        self.logger.info(f"Starting workflow '{workflow.name}'", extra={
            "workflow_id": workflow.workflow_id,
            "step_count": workflow.get_step_count()
        })

        execution = await self.orchestrator.execute_job(workflow.to_job(), cancellation, progress)
        succeeded = execution.status == JobExecutionStatus.COMPLETED

        self.logger.info(f"Workflow '{workflow.name}' finished", extra={
            "workflow_id": workflow.workflow_id,
            "succeeded": succeeded,
            "duration_ms": execution.duration_ms
        })
        return succeeded

    async def execute_steps(self, steps: List[Step], cancellation: Optional[CancellationToken] = None) -> bool:
        """Run runtime steps in order, stopping at the first failure."""
        started = time.monotonic()
        for step in steps:
            if cancellation is not None and cancellation.is_cancelled:
                self.logger.info("Step sequence cancelled", extra={"next_step": step.name})
                return False

            if not await self.step_runner.run_step(step):
                self.logger.error(f"Step '{step.name}' failed", extra={
                    "step_id": step.step_id,
                    "error": step.last_error
                })
                return False

        self.logger.debug(f"Ran {len(steps)} steps in {int((time.monotonic() - started) * 1000)} ms")
        return True
