"""
Step runner.

Drives a Step through NotRun -> Running -> Succeeded | Failed. Faults raised
by step actions are converted into a failed outcome and never propagate.
"""

from ..models.step import Step, StepState
from ..utils.logger import get_logger


class StepRunner:
    """Runs the execute / on-success / on-failure branch of a single step."""

    def __init__(self):
        self.logger = get_logger(__name__)

    async def run_step(self, step: Step) -> bool:
        """
        Run a step once.

        A step without an execute action is vacuously successful. On success
        the step's result is the success continuation's result when present.
        On a false result or a raised fault the failure continuation runs
        exactly once and the step's result is False.

        Args:
            step: Step in the NotRun state

        Returns:
            The step's boolean outcome
        """
        step.transition(StepState.RUNNING)

        try:
            succeeded = True if step.execute is None else bool(await step.execute())
            if succeeded:
                result = True if step.on_success is None else bool(await step.on_success())
                if result:
                    step.transition(StepState.SUCCEEDED)
                    return True
                step.last_error = step.last_error or f"Step '{step.name}' rejected by its success continuation"
                # A rejecting success continuation is final; the failure continuation is not run
                step.transition(StepState.FAILED)
                return False
        except Exception as e:
            step.last_error = f"{e.__class__.__name__}: {e}"
            self.logger.warning(f"Step '{step.name}' raised during execution", extra={
                "step_id": step.step_id,
                "error": step.last_error
            }, exc_info=True)

        await self._run_failure_continuation(step)
        step.transition(StepState.FAILED)
        return False

    async def _run_failure_continuation(self, step: Step):
        if step.on_failure is None:
            return
        try:
            await step.on_failure()
        except Exception:
            self.logger.error(f"Failure continuation of step '{step.name}' raised", extra={
                "step_id": step.step_id
            }, exc_info=True)
