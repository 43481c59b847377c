"""
Workflow Engine

An asyncio job/task execution engine. A job is an ordered list of typed
tasks; the orchestrator runs them sequentially through registered task
handlers with per-task timeout, retry and cancellation, and produces an
auditable execution record.

Usage:
    from workflow_engine import JobOrchestrator, Job, JobTask, TaskType

    job = Job(job_id=1, name="ETL-1", tasks=[
        JobTask.create_api_fetch_task(1, "Fetch", "https://api.example.com/data"),
        JobTask.create_file_task(2, "Write", "/tmp/data.json"),
    ])
    job.tasks[1].execution_order = 2

    orchestrator = JobOrchestrator()
    execution = await orchestrator.execute_job(job)
    print(execution.status, execution.progress_percentage)
"""

__version__ = "1.0.0"
__author__ = "Workflow Engine Team"
__license__ = "MIT"

# Data models
from .models.job import JobGroup, Job, JobTask, JobType, TaskType
from .models.execution import JobExecution, JobExecutionStatus, TaskResult, TaskOutcome
from .models.step import Step, StepState, Workflow

# Core orchestrator
from .core.cancellation import CancellationToken
from .core.orchestrator import JobOrchestrator, create_orchestrator

# Handlers
from .handlers.base import BaseTaskHandler, TaskContext
from .handlers.registry import TaskHandlerRegistry

# Services
from .services.step_runner import StepRunner
from .services.task_executor import TaskExecutor, RetryPolicy
from .services.execution_manager import ExecutionManager
from .services.workflow_executor import WorkflowExecutor
from .services.stores import InMemoryJobStore

# Utilities
from .utils.config import EngineSettings, load_settings
from .utils.database import DatabaseManager
from .utils.logger import setup_logger, get_logger

# Exceptions
from .core.exceptions import (
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
    DatabaseError
)

__all__ = [
    # Models
    "JobGroup",
    "Job",
    "JobTask",
    "JobType",
    "TaskType",
    "JobExecution",
    "JobExecutionStatus",
    "TaskResult",
    "TaskOutcome",
    "Step",
    "StepState",
    "Workflow",

    # Core
    "CancellationToken",
    "JobOrchestrator",
    "create_orchestrator",

    # Handlers
    "BaseTaskHandler",
    "TaskContext",
    "TaskHandlerRegistry",

    # Services
    "StepRunner",
    "TaskExecutor",
    "RetryPolicy",
    "ExecutionManager",
    "WorkflowExecutor",
    "InMemoryJobStore",

    # Utilities
    "EngineSettings",
    "load_settings",
    "DatabaseManager",
    "setup_logger",
    "get_logger",

    # Exceptions
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

    # Package metadata
    "__version__",
    "__author__",
    "__license__"
]

# Package-level configuration
import logging
logging.getLogger(__name__).addHandler(logging.NullHandler())
