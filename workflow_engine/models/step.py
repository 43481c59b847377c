"""
Step and legacy workflow models

A Step is the atomic execute / on-success / on-failure unit. Its actions are
runtime callables and are never persisted; the persistable form of a unit of
work is a JobTask, whose task type is resolved through the handler registry.
The legacy linear Workflow is a named list of such tasks and folds directly
into a Job.
"""

from enum import Enum
from datetime import datetime
from typing import Optional, Dict, Any, List, Callable, Awaitable, Tuple
from dataclasses import dataclass, field

from .job import Job, JobTask, JobType, utc_now
from ..core.exceptions import JobDefinitionError

StepAction = Callable[[], Awaitable[bool]]


class StepState(Enum):
    """Step state machine states."""
    NOT_RUN = "not_run"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


STEP_TRANSITIONS = {
    StepState.NOT_RUN: [StepState.RUNNING],
    StepState.RUNNING: [StepState.SUCCEEDED, StepState.FAILED],
    StepState.SUCCEEDED: [],
    StepState.FAILED: []
}


@dataclass
class Step:
    """Atomic unit with an execute action and optional continuations."""

    step_id: int
    name: str
    execute: Optional[StepAction] = field(default=None, repr=False, compare=False)
    on_success: Optional[StepAction] = field(default=None, repr=False, compare=False)
    on_failure: Optional[StepAction] = field(default=None, repr=False, compare=False)

    state: StepState = StepState.NOT_RUN
    last_error: Optional[str] = None
    history: List[Tuple[StepState, datetime]] = field(default_factory=list)

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def transition(self, target: StepState):
        if target not in STEP_TRANSITIONS[self.state]:
            raise ValueError(f"Step '{self.name}' cannot move from {self.state.value} to {target.value}")
        self.state = target
        self.updated_at = utc_now()
        self.history.append((target, self.updated_at))

    @property
    def is_finished(self) -> bool:
        return self.state in (StepState.SUCCEEDED, StepState.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "name": self.name,
            "state": self.state.value,
            "last_error": self.last_error,
            "history": [(s.value, ts.isoformat()) for s, ts in self.history],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat()
        }


@dataclass
class Workflow:
    """Legacy linear workflow: steps run in the order they were added."""

    workflow_id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True
    steps: List[JobTask] = field(default_factory=list)

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def add_step(self, step: JobTask):
        if step is None:
            raise JobDefinitionError("step must not be None")
        if self.get_step(step.task_id) is not None:
            raise JobDefinitionError(f"Step with ID {step.task_id} already exists in the workflow")
        self.steps.append(step)
        self.updated_at = utc_now()

    def remove_step(self, step_id: int) -> bool:
        step = self.get_step(step_id)
        if step is None:
            return False
        self.steps.remove(step)
        self.updated_at = utc_now()
        return True

    def get_step(self, step_id: int) -> Optional[JobTask]:
        return next((s for s in self.steps if s.task_id == step_id), None)

    def get_step_count(self) -> int:
        return len(self.steps)

    def has_steps(self) -> bool:
        return bool(self.steps)

    def validate(self) -> bool:
        return bool(self.name and self.name.strip()) and self.is_active

    def to_job(self) -> Job:
        """Fold the workflow into an equivalent job, ordered by position."""
        tasks = []
        for position, step in enumerate(self.steps, start=1):
            task = JobTask.from_dict(step.to_dict())
            task.execution_order = position
            tasks.append(task)

        return Job(
            job_id=self.workflow_id,
            name=self.name,
            description=self.description,
            job_type=JobType.GENERAL.value,
            is_active=self.is_active,
            tasks=tasks
        )
