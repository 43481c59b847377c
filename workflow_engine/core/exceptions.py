"""
Exception classes for the Workflow Engine

Provides the error taxonomy used by the task executor and job orchestrator.
Handler-level errors are converted into task outcomes inside the executor;
only contract violations (such as a missing job definition) reach callers.
"""

from collections import Counter
from typing import Any, Dict, Optional


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    retryable = False

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


class TaskValidationError(WorkflowEngineError):
    """Raised when a task configuration is malformed. Never retried."""

    def __init__(self, task_type: str, message: str, field: Optional[str] = None):
        super().__init__(
            f"Invalid configuration for {task_type} task: {message}",
            error_code="VALIDATION_ERROR",
            details={"task_type": task_type, "field": field}
        )


class HandlerFault(WorkflowEngineError):
    """Raised when a handler reports failure or its execute action raises."""

    retryable = True

    def __init__(self, task_type: str, message: str):
        super().__init__(
            message,
            error_code="HANDLER_FAULT",
            details={"task_type": task_type}
        )


class TaskTimeoutError(WorkflowEngineError):
    """Raised when a task attempt exceeds its deadline."""

    retryable = True

    def __init__(self, task_name: str, timeout_seconds: float):
        super().__init__(
            f"Task '{task_name}' timed out after {timeout_seconds} seconds",
            error_code="TIMEOUT_ERROR",
            details={"task_name": task_name, "timeout_seconds": timeout_seconds}
        )


class TaskCancelledError(WorkflowEngineError):
    """Raised when external cancellation aborts a task attempt."""

    def __init__(self, task_name: Optional[str] = None):
        message = "Execution was cancelled"
        if task_name:
            message = f"Task '{task_name}' was cancelled"
        super().__init__(
            message,
            error_code="CANCELLED",
            details={"task_name": task_name}
        )


class UnknownTaskTypeError(WorkflowEngineError):
    """Raised by a strict registry when no handler matches a task type."""

    def __init__(self, task_type: str):
        super().__init__(
            f"No handler registered for task type '{task_type}'",
            error_code="UNKNOWN_TASK_TYPE",
            details={"task_type": task_type}
        )


class JobDefinitionError(WorkflowEngineError):
    """Raised when a job definition violates the engine's contract."""

    def __init__(self, message: str, job_id: Optional[int] = None):
        super().__init__(
            f"Invalid job definition: {message}",
            error_code="JOB_DEFINITION_ERROR",
            details={"job_id": job_id}
        )


class ExecutionStateError(WorkflowEngineError):
    """Raised on an illegal job execution status transition."""

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            f"Cannot transition execution from {current_status} to {target_status}",
            error_code="EXECUTION_STATE_ERROR",
            details={"current_status": current_status, "target_status": target_status}
        )


class ExecutionNotFoundError(WorkflowEngineError):
    """Raised when a requested execution is not tracked."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution {execution_id} not found",
            error_code="EXECUTION_NOT_FOUND",
            details={"execution_id": execution_id}
        )


class ConfigurationError(WorkflowEngineError):
    """Raised when there's an error in engine configuration."""

    def __init__(self, config_key: str, message: str):
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            error_code="CONFIGURATION_ERROR",
            details={"config_key": config_key}
        )


class DatabaseError(WorkflowEngineError):
    """Raised when database operations fail."""

    def __init__(self, operation: str, message: str, table: Optional[str] = None):
        super().__init__(
            f"Database operation '{operation}' failed: {message}",
            error_code="DATABASE_ERROR",
            details={"operation": operation, "table": table}
        )


def is_retryable(error: BaseException) -> bool:
    """Check whether an error should consume a retry attempt."""
    if isinstance(error, WorkflowEngineError):
        return error.retryable
    # Unclassified exceptions raised by handler code count as handler faults
    return isinstance(error, Exception)


class ErrorRegistry:
    """
    Process-wide tally of errors the orchestrator handled without raising,
    keyed both by exception class and by error code.
    """

    def __init__(self):
        self.by_type: Counter = Counter()
        self.by_code: Counter = Counter()

    def record_error(self, error: BaseException):
        self.by_type[type(error).__name__] += 1
        self.by_code[getattr(error, "error_code", None) or "UNCLASSIFIED"] += 1

    def get_error_statistics(self) -> Dict[str, Any]:
        top = self.by_type.most_common(1)
        return {
            "total_errors": sum(self.by_type.values()),
            "error_counts": dict(self.by_type),
            "error_codes": dict(self.by_code),
            "most_common_error": top[0][0] if top else None
        }

    def reset(self):
        self.by_type.clear()
        self.by_code.clear()


error_registry = ErrorRegistry()
