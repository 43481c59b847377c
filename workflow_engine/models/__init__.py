"""
Data models for the Workflow Engine

Job definitions, execution records, steps and the handler configuration
models.
"""

# Job definition models
from .job import (
    JobGroup,
    Job,
    JobTask,
    JobType,
    TaskType,
    utc_now
)

# Execution models
from .execution import (
    JobExecution,
    JobExecutionStatus,
    TaskResult,
    TaskOutcome,
    EXECUTION_STATUS_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition_to
)

# Step models
from .step import (
    Step,
    StepState,
    StepAction,
    STEP_TRANSITIONS,
    Workflow
)

# Handler configuration models
from .configs import (
    HandlerConfig,
    ApiDataFetchConfig,
    FileCreationConfig,
    ZipCompressionConfig,
    ApiUploadConfig,
    SftpUploadConfig
)

__all__ = [
    # Job definition models
    "JobGroup",
    "Job",
    "JobTask",
    "JobType",
    "TaskType",
    "utc_now",

    # Execution models
    "JobExecution",
    "JobExecutionStatus",
    "TaskResult",
    "TaskOutcome",
    "EXECUTION_STATUS_TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition_to",

    # Step models
    "Step",
    "StepState",
    "StepAction",
    "STEP_TRANSITIONS",
    "Workflow",

    # Handler configuration models
    "HandlerConfig",
    "ApiDataFetchConfig",
    "FileCreationConfig",
    "ZipCompressionConfig",
    "ApiUploadConfig",
    "SftpUploadConfig"
]
