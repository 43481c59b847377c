"""
Job definition models for the Workflow Engine

Defines job groups, jobs and their typed tasks. Definitions are plain data:
the orchestrator reads them but never mutates them during a run.
"""

import json
from enum import Enum
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Union
from dataclasses import dataclass, field

from ..core.exceptions import JobDefinitionError


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class TaskType(Enum):
    """Built-in task type tags used for handler dispatch."""
    FETCH_API_DATA = "FetchApiData"
    CREATE_FILE = "CreateFile"
    COMPRESS_FILE = "CompressFile"
    UPLOAD = "Upload"
    UPLOAD_SFTP = "UploadSftp"
    GENERAL = "General"


class JobType(Enum):
    """Display tags for jobs. Jobs may carry any free-form tag."""
    GENERAL = "General"
    DATA_PIPELINE = "DataPipeline"
    API_INTEGRATION = "ApiIntegration"
    FILE_PROCESSING = "FileProcessing"


def _tag(value: Union[str, Enum]) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def _parse_datetime(value: Any) -> Any:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


@dataclass
class JobTask:
    """One typed, configurable unit of work inside a job."""

    task_id: int
    name: str
    task_type: str = TaskType.GENERAL.value
    execution_order: int = 1

    # Opaque, handler-specific configuration (usually a JSON object)
    configuration_data: Optional[str] = None

    max_retries: int = 3
    timeout_seconds: int = 300
    continue_on_failure: bool = False
    is_active: bool = True

    description: Optional[str] = None
    job_id: Optional[int] = None

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.task_type = _tag(self.task_type)
        if isinstance(self.configuration_data, dict):
            self.configuration_data = json.dumps(self.configuration_data)

    def touch(self):
        """Record a modification of the task definition."""
        self.updated_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert task to dictionary for serialization."""
        return {
            "task_id": self.task_id,
            "name": self.name,
            "task_type": self.task_type,
            "execution_order": self.execution_order,
            "configuration_data": self.configuration_data,
            "max_retries": self.max_retries,
            "timeout_seconds": self.timeout_seconds,
            "continue_on_failure": self.continue_on_failure,
            "is_active": self.is_active,
            "description": self.description,
            "job_id": self.job_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobTask":
        """Create task from dictionary."""
        data = dict(data)
        if "configuration" in data:
            data["configuration_data"] = data.pop("configuration")
        for field_name in ["created_at", "updated_at"]:
            if data.get(field_name):
                data[field_name] = _parse_datetime(data[field_name])
            else:
                data.pop(field_name, None)
        return cls(**data)

    @classmethod
    def create_api_fetch_task(cls, task_id: int, name: str, api_url: str, **config: Any) -> "JobTask":
        return cls(task_id, name, TaskType.FETCH_API_DATA.value,
                   configuration_data=json.dumps({"api_url": api_url, **config}))

    @classmethod
    def create_file_task(cls, task_id: int, name: str, output_path: str, **config: Any) -> "JobTask":
        return cls(task_id, name, TaskType.CREATE_FILE.value,
                   configuration_data=json.dumps({"output_path": output_path, **config}))

    @classmethod
    def create_compress_task(cls, task_id: int, name: str, source_file_path: str,
                             zip_file_path: str, **config: Any) -> "JobTask":
        return cls(task_id, name, TaskType.COMPRESS_FILE.value,
                   configuration_data=json.dumps({
                       "source_file_path": source_file_path,
                       "zip_file_path": zip_file_path,
                       **config
                   }))

    @classmethod
    def create_sftp_upload_task(cls, task_id: int, name: str, host: str, local_file_path: str,
                                remote_directory_path: str, **config: Any) -> "JobTask":
        return cls(task_id, name, TaskType.UPLOAD_SFTP.value,
                   configuration_data=json.dumps({
                       "host": host,
                       "local_file_path": local_file_path,
                       "remote_directory_path": remote_directory_path,
                       **config
                   }))


@dataclass
class Job:
    """An ordered sequence of tasks executed as one pipeline run."""

    job_id: int
    name: str
    description: Optional[str] = None
    job_type: str = JobType.GENERAL.value
    execution_order: int = 1
    is_active: bool = True
    job_group_id: Optional[int] = None

    tasks: List[JobTask] = field(default_factory=list)

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        self.job_type = _tag(self.job_type)
        seen = set()
        for task in self.tasks:
            if task.task_id in seen:
                raise JobDefinitionError(f"Task with ID {task.task_id} already exists in the job", self.job_id)
            seen.add(task.task_id)
            task.job_id = self.job_id

    def add_task(self, task: JobTask):
        """Append a task, rejecting duplicate task IDs."""
        if task is None:
            raise JobDefinitionError("task must not be None", self.job_id)
        if self.get_task(task.task_id) is not None:
            raise JobDefinitionError(f"Task with ID {task.task_id} already exists in the job", self.job_id)

        task.job_id = self.job_id
        self.tasks.append(task)
        self.touch()

    def remove_task(self, task_id: int) -> bool:
        task = self.get_task(task_id)
        if task is None:
            return False
        self.tasks.remove(task)
        self.touch()
        return True

    def get_task(self, task_id: int) -> Optional[JobTask]:
        return next((t for t in self.tasks if t.task_id == task_id), None)

    def get_task_count(self) -> int:
        return len(self.tasks)

    def has_tasks(self) -> bool:
        return bool(self.tasks)

    def clear_tasks(self):
        self.tasks.clear()
        self.touch()

    def get_active_tasks_ordered(self) -> List[JobTask]:
        """Active tasks sorted by execution order; ties keep insertion order."""
        return sorted((t for t in self.tasks if t.is_active), key=lambda t: t.execution_order)

    def validate(self) -> bool:
        """Check if the job is eligible for execution."""
        return bool(self.name and self.name.strip()) and self.is_active

    def touch(self):
        self.updated_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "name": self.name,
            "description": self.description,
            "job_type": self.job_type,
            "execution_order": self.execution_order,
            "is_active": self.is_active,
            "job_group_id": self.job_group_id,
            "tasks": [t.to_dict() for t in self.tasks],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Create job from dictionary."""
        data = dict(data)
        data["tasks"] = [
            t if isinstance(t, JobTask) else JobTask.from_dict(t)
            for t in data.get("tasks", [])
        ]
        for field_name in ["created_at", "updated_at"]:
            if data.get(field_name):
                data[field_name] = _parse_datetime(data[field_name])
            else:
                data.pop(field_name, None)
        return cls(**data)

    @classmethod
    def create_data_pipeline_job(cls, job_id: int, name: str, description: Optional[str] = None) -> "Job":
        return cls(job_id, name, description, JobType.DATA_PIPELINE.value)

    @classmethod
    def create_api_integration_job(cls, job_id: int, name: str, description: Optional[str] = None) -> "Job":
        return cls(job_id, name, description, JobType.API_INTEGRATION.value)

    @classmethod
    def create_file_processing_job(cls, job_id: int, name: str, description: Optional[str] = None) -> "Job":
        return cls(job_id, name, description, JobType.FILE_PROCESSING.value)


@dataclass
class JobGroup:
    """Named container owning an ordered collection of jobs."""

    group_id: int
    name: str
    description: Optional[str] = None
    is_active: bool = True
    jobs: List[Job] = field(default_factory=list)

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        for job in self.jobs:
            job.job_group_id = self.group_id

    def add_job(self, job: Job):
        if job is None:
            raise JobDefinitionError("job must not be None")
        if self.contains_job(job.job_id):
            raise JobDefinitionError(f"Job with ID {job.job_id} already exists in the job group", job.job_id)

        job.job_group_id = self.group_id
        self.jobs.append(job)
        self.touch()

    def remove_job(self, job_id: int) -> bool:
        job = self.get_job(job_id)
        if job is None:
            return False
        self.jobs.remove(job)
        self.touch()
        return True

    def get_job(self, job_id: int) -> Optional[Job]:
        return next((j for j in self.jobs if j.job_id == job_id), None)

    def contains_job(self, job_id: int) -> bool:
        return self.get_job(job_id) is not None

    def get_job_count(self) -> int:
        return len(self.jobs)

    def has_jobs(self) -> bool:
        return bool(self.jobs)

    def get_active_job_count(self) -> int:
        return sum(1 for j in self.jobs if j.is_active)

    def get_active_jobs_ordered(self) -> List[Job]:
        return sorted((j for j in self.jobs if j.is_active), key=lambda j: j.execution_order)

    def get_jobs_by_type(self, job_type: str) -> List[Job]:
        wanted = _tag(job_type).lower()
        return [j for j in self.jobs if j.job_type.lower() == wanted]

    def activate_all_jobs(self):
        for job in self.jobs:
            job.is_active = True
            job.touch()
        self.touch()

    def deactivate_all_jobs(self):
        """Soft-deactivate every job; nothing is removed."""
        for job in self.jobs:
            job.is_active = False
            job.touch()
        self.touch()

    def reorder_jobs(self, job_orders: Dict[int, int]):
        """Apply new execution orders keyed by job ID. Unknown IDs are ignored."""
        for job_id, order in job_orders.items():
            job = self.get_job(job_id)
            if job is not None:
                job.execution_order = order
                job.touch()
        self.touch()

    def validate(self) -> bool:
        return bool(self.name and self.name.strip()) and self.is_active

    def touch(self):
        self.updated_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "jobs": [j.to_dict() for j in self.jobs],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobGroup":
        data = dict(data)
        data["jobs"] = [
            j if isinstance(j, Job) else Job.from_dict(j)
            for j in data.get("jobs", [])
        ]
        for field_name in ["created_at", "updated_at"]:
            if data.get(field_name):
                data[field_name] = _parse_datetime(data[field_name])
            else:
                data.pop(field_name, None)
        return cls(**data)
