"""
Core package for the Workflow Engine

Contains the error taxonomy and the cancellation signal. The orchestrator
lives in ``workflow_engine.core.orchestrator``.
"""

from .cancellation import CancellationToken
from .exceptions import (
    WorkflowEngineError,
    TaskValidationError,
    HandlerFault,
    TaskTimeoutError,
    TaskCancelledError,
    UnknownTaskTypeError,
    JobDefinitionError,
    ExecutionStateError,
    ExecutionNotFoundError,
    ConfigurationError,
    DatabaseError,
    ErrorRegistry,
    error_registry,
    is_retryable
)

__all__ = [
    "CancellationToken",
    "WorkflowEngineError",
    "TaskValidationError",
    "HandlerFault",
    "TaskTimeoutError",
    "TaskCancelledError",
    "UnknownTaskTypeError",
    "JobDefinitionError",
    "ExecutionStateError",
    "ExecutionNotFoundError",
    "ConfigurationError",
    "DatabaseError",
    "ErrorRegistry",
    "error_registry",
    "is_retryable"
]
