"""
Services package for the Workflow Engine

Step and task execution, the built-in pipeline builder, the legacy workflow
executor, host-side execution management and the in-memory store.
"""

from .step_runner import StepRunner
from .task_executor import TaskExecutor, RetryPolicy
from .stores import InMemoryJobStore
from .execution_manager import ExecutionManager
from .workflow_executor import WorkflowExecutor
from .pipeline_builder import (
    PipelineRequest,
    PipelineConfigurations,
    create_default_configurations,
    create_sftp_pipeline_configurations,
    apply_request_overrides,
    configurations_for_request,
    build_api_to_upload_job,
    build_api_to_file_job,
    build_file_to_upload_job,
    build_sftp_pipeline_job
)

__all__ = [
    "StepRunner",
    "TaskExecutor",
    "RetryPolicy",
    "InMemoryJobStore",
    "ExecutionManager",
    "WorkflowExecutor",
    "PipelineRequest",
    "PipelineConfigurations",
    "create_default_configurations",
    "create_sftp_pipeline_configurations",
    "apply_request_overrides",
    "configurations_for_request",
    "build_api_to_upload_job",
    "build_api_to_file_job",
    "build_file_to_upload_job",
    "build_sftp_pipeline_job"
]
