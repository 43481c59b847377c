"""
Execution tracking models for the Workflow Engine

Defines the job execution audit record, its status state machine, and the
per-task results the task executor reports to the orchestrator.
"""

from enum import Enum
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from uuid import uuid4

from .job import utc_now
from ..core.exceptions import ExecutionStateError


class JobExecutionStatus(Enum):
    """Job execution status enumeration."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskOutcome(Enum):
    """Terminal outcome of one task run (all attempts included)."""
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass
class TaskResult:
    """Outcome reported by the task executor for a single task."""

    outcome: TaskOutcome
    task_id: Optional[int] = None
    task_name: Optional[str] = None
    task_type: Optional[str] = None

    output: Any = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    attempts: int = 0
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.outcome == TaskOutcome.SUCCESS

    @classmethod
    def success(cls, output: Any = None, **kwargs) -> "TaskResult":
        return cls(TaskOutcome.SUCCESS, output=output, **kwargs)

    @classmethod
    def failure(cls, error_message: str, error_code: Optional[str] = None, **kwargs) -> "TaskResult":
        return cls(TaskOutcome.FAILURE, error_message=error_message, error_code=error_code, **kwargs)

    @classmethod
    def cancelled(cls, error_message: str = "Task was cancelled", **kwargs) -> "TaskResult":
        return cls(TaskOutcome.CANCELLED, error_message=error_message, error_code="CANCELLED", **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        # Output artifacts can be large; only their presence is recorded
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "task_type": self.task_type,
            "outcome": self.outcome.value,
            "has_output": self.output is not None,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "attempts": self.attempts,
            "duration_ms": self.duration_ms
        }


# Execution status transition rules
EXECUTION_STATUS_TRANSITIONS = {
    JobExecutionStatus.PENDING: [JobExecutionStatus.RUNNING, JobExecutionStatus.FAILED, JobExecutionStatus.CANCELLED],
    JobExecutionStatus.RUNNING: [JobExecutionStatus.COMPLETED, JobExecutionStatus.FAILED, JobExecutionStatus.CANCELLED],
    JobExecutionStatus.COMPLETED: [],  # Terminal state
    JobExecutionStatus.FAILED: [],  # Terminal state
    JobExecutionStatus.CANCELLED: []  # Terminal state
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in EXECUTION_STATUS_TRANSITIONS.items() if not targets
)


def can_transition_to(current_status: JobExecutionStatus, target_status: JobExecutionStatus) -> bool:
    """Check if an execution can transition from current status to target status."""
    return target_status in EXECUTION_STATUS_TRANSITIONS.get(current_status, [])


@dataclass
class JobExecution:
    """Audit record of one run of a job. Frozen once terminal."""

    job_id: int
    total_tasks: int = 0
    execution_id: str = field(default_factory=lambda: str(uuid4()))

    status: JobExecutionStatus = JobExecutionStatus.PENDING
    current_task_index: int = 0
    progress_percentage: int = 0

    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    # First fatal cause
    error_message: Optional[str] = None

    task_results: List[TaskResult] = field(default_factory=list)
    execution_data: Dict[str, Any] = field(default_factory=dict)

    updated_at: datetime = field(default_factory=utc_now)

    def start(self):
        """Move from Pending to Running and reset progress."""
        self._transition(JobExecutionStatus.RUNNING)
        self.started_at = utc_now()
        self.current_task_index = 0
        self.progress_percentage = 0

    def advance_to_next_task(self):
        """Count one more task as attempted and refresh the progress snapshot."""
        self._ensure_mutable()
        if self.current_task_index < self.total_tasks:
            self.current_task_index += 1
            self.update_progress()

    def update_progress(self):
        if self.total_tasks == 0:
            self.progress_percentage = 100 if self.status == JobExecutionStatus.COMPLETED else 0
        else:
            self.progress_percentage = (100 * self.current_task_index) // self.total_tasks
        self.updated_at = utc_now()

    def record_task_result(self, result: TaskResult):
        self._ensure_mutable()
        self.task_results.append(result)
        self.updated_at = utc_now()

    def complete(self):
        self._transition(JobExecutionStatus.COMPLETED)
        self.current_task_index = self.total_tasks
        self.progress_percentage = 100
        self._finalize()

    def fail(self, error_message: str):
        self._transition(JobExecutionStatus.FAILED)
        if not self.error_message:
            self.error_message = error_message
        self._finalize()

    def cancel(self, reason: Optional[str] = None):
        self._transition(JobExecutionStatus.CANCELLED)
        if reason and not self.error_message:
            self.error_message = reason
        self._finalize()

    def is_finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def get_duration(self) -> Optional[timedelta]:
        if self.duration_ms is None:
            return None
        return timedelta(milliseconds=self.duration_ms)

    def _transition(self, target: JobExecutionStatus):
        if not can_transition_to(self.status, target):
            raise ExecutionStateError(self.status.value, target.value)
        self.status = target
        self.updated_at = utc_now()

    def _ensure_mutable(self):
        if self.is_finished():
            raise ExecutionStateError(self.status.value, "mutation")

    def _finalize(self):
        self.completed_at = utc_now()
        self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)
        self.execution_data = {
            "tasks": [r.to_dict() for r in self.task_results],
            "failed_tasks": [r.task_name for r in self.task_results if r.outcome == TaskOutcome.FAILURE]
        }
        self.updated_at = self.completed_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert execution to dictionary."""
        return {
            "execution_id": self.execution_id,
            "job_id": self.job_id,
            "status": self.status.value,
            "current_task_index": self.current_task_index,
            "total_tasks": self.total_tasks,
            "progress_percentage": self.progress_percentage,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
            "task_results": [r.to_dict() for r in self.task_results],
            "execution_data": self.execution_data,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }
