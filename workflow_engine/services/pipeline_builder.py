"""
Built-in API -> File -> Compress -> Upload pipeline.

Produces the four stage configurations from a shared base and composes
them into a Job. Request overrides are layered on the defaults: header and
form-data entries are unioned with request keys winning, and a supplied
timeout overwrites both the fetch and the upload stage timeouts.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..models.configs import (
    ApiDataFetchConfig, ApiUploadConfig, FileCreationConfig, HandlerConfig,
    SftpUploadConfig, ZipCompressionConfig
)
from ..models.job import Job, JobTask, JobType, TaskType
from ..utils.logger import get_logger


logger = get_logger(__name__)

USER_AGENT = "WorkflowEngine/1.0"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class PipelineRequest(BaseModel):
    """Caller-supplied overrides for one pipeline run."""

    model_config = ConfigDict(extra="forbid")

    workflow_name: str = Field(default="api-pipeline", min_length=1)
    api_url: str = Field(min_length=1)
    upload_url: str = Field(min_length=1)
    output_directory: Optional[str] = None
    auth_token: Optional[str] = None
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: Optional[int] = Field(default=None, gt=0)
    file_field_name: Optional[str] = None
    form_data: Dict[str, str] = Field(default_factory=dict)


@dataclass
class PipelineConfigurations:
    """The four stage configurations of one pipeline."""
    fetch: ApiDataFetchConfig
    file: FileCreationConfig
    compress: ZipCompressionConfig
    upload: Union[ApiUploadConfig, SftpUploadConfig]

    @property
    def json_file_path(self) -> str:
        return self.file.output_path

    @property
    def zip_file_path(self) -> str:
        return self.compress.zip_file_path


def _timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)


def create_default_configurations(
    api_url: str,
    output_directory: str,
    upload_url: str,
    auth_token: Optional[str] = None,
    now: Optional[datetime] = None
) -> PipelineConfigurations:
    """
    Create the default configurations for the HTTP upload pipeline.

    Files are named ``api_data_<yyyyMMdd_HHmmss>.json`` and ``.zip`` inside
    ``output_directory``.
    """
    timestamp = _timestamp(now)
    json_path = os.path.join(output_directory, f"api_data_{timestamp}.json")
    zip_path = os.path.join(output_directory, f"api_data_{timestamp}.zip")

    return PipelineConfigurations(
        fetch=ApiDataFetchConfig(
            api_url=api_url,
            auth_token=auth_token,
            timeout_seconds=30,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT}
        ),
        file=FileCreationConfig(output_path=json_path, overwrite_existing=True),
        compress=ZipCompressionConfig(
            source_file_path=json_path,
            zip_file_path=zip_path,
            compression_level="optimal",
            delete_source_after_compression=False
        ),
        upload=ApiUploadConfig(
            upload_url=upload_url,
            file_path=zip_path,
            file_field_name="file",
            auth_token=auth_token,
            timeout_seconds=300,
            headers={"Accept": "application/json"},
            form_data={"timestamp": timestamp, "source": "WorkflowEngine"}
        )
    )


def create_sftp_pipeline_configurations(
    api_url: str,
    output_directory: str,
    sftp_host: str,
    sftp_username: str,
    sftp_password: str,
    sftp_remote_directory: str,
    now: Optional[datetime] = None
) -> PipelineConfigurations:
    """Create the default configurations for the SFTP upload pipeline."""
    timestamp = _timestamp(now)
    json_path = os.path.join(output_directory, f"data_{timestamp}.json")
    zip_path = os.path.join(output_directory, f"data_{timestamp}.zip")

    return PipelineConfigurations(
        fetch=ApiDataFetchConfig(api_url=api_url, timeout_seconds=30),
        file=FileCreationConfig(output_path=json_path, overwrite_existing=True),
        compress=ZipCompressionConfig(
            source_file_path=json_path,
            zip_file_path=zip_path,
            compression_level="optimal",
            delete_source_after_compression=True
        ),
        upload=SftpUploadConfig(
            host=sftp_host,
            username=sftp_username,
            password=sftp_password,
            local_file_path=zip_path,
            remote_directory_path=sftp_remote_directory,
            create_remote_directories=True
        )
    )


def apply_request_overrides(request: PipelineRequest, configs: PipelineConfigurations) -> PipelineConfigurations:
    """
    Layer request-supplied values over stage defaults.

    Headers go to both the fetch and the upload stage; form data only to the
    upload stage. Request keys win on conflict. A timeout, when supplied,
    replaces both stage timeouts.
    """
    fetch = configs.fetch.model_copy(deep=True)
    upload = configs.upload.model_copy(deep=True)
    is_http_upload = isinstance(upload, ApiUploadConfig)

    if request.custom_headers:
        fetch.headers = {**fetch.headers, **request.custom_headers}
        if is_http_upload:
            upload.headers = {**upload.headers, **request.custom_headers}

    if request.timeout_seconds is not None:
        fetch.timeout_seconds = request.timeout_seconds
        if is_http_upload:
            upload.timeout_seconds = request.timeout_seconds
        else:
            upload.connection_timeout_seconds = request.timeout_seconds

    if is_http_upload:
        if request.file_field_name:
            upload.file_field_name = request.file_field_name
        if request.form_data:
            upload.form_data = {**upload.form_data, **request.form_data}

    return PipelineConfigurations(fetch=fetch, file=configs.file, compress=configs.compress, upload=upload)


def configurations_for_request(request: PipelineRequest, now: Optional[datetime] = None) -> PipelineConfigurations:
    """Default HTTP pipeline configurations with the request's overrides applied."""
    configs = create_default_configurations(
        request.api_url,
        request.output_directory or os.getcwd(),
        request.upload_url,
        request.auth_token,
        now=now
    )
    return apply_request_overrides(request, configs)


def _task(task_id: int, name: str, task_type: TaskType, config: HandlerConfig) -> JobTask:
    return JobTask(
        task_id=task_id,
        name=name,
        task_type=task_type.value,
        execution_order=task_id,
        configuration_data=config.model_dump_json()
    )


def build_api_to_upload_job(job_id: int, name: str, configs: PipelineConfigurations) -> Job:
    """Compose the four-stage pipeline job; the upload stage is HTTP or SFTP."""
    if isinstance(configs.upload, SftpUploadConfig):
        upload_task = _task(4, "Upload to SFTP", TaskType.UPLOAD_SFTP, configs.upload)
        description = "Data pipeline with API fetch, file creation, compression, and SFTP upload"
    else:
        upload_task = _task(4, "Upload ZIP File", TaskType.UPLOAD, configs.upload)
        description = "Fetches data from API, creates JSON file, compresses to ZIP, and uploads"

    job = Job(
        job_id=job_id,
        name=name,
        description=description,
        job_type=JobType.DATA_PIPELINE.value,
        tasks=[
            _task(1, "Fetch API Data", TaskType.FETCH_API_DATA, configs.fetch),
            _task(2, "Create JSON File", TaskType.CREATE_FILE, configs.file),
            _task(3, "Compress to ZIP", TaskType.COMPRESS_FILE, configs.compress),
            upload_task
        ]
    )

    logger.info(f"Created pipeline job '{name}' with {job.get_task_count()} tasks", extra={
        "job_id": job_id,
        "upload_type": upload_task.task_type
    })
    return job


def build_api_to_file_job(job_id: int, name: str, fetch: ApiDataFetchConfig,
                          file: FileCreationConfig) -> Job:
    """Two-stage job: fetch data and write it to a file."""
    return Job(
        job_id=job_id,
        name=name,
        description="Fetches data from API and creates JSON file",
        job_type=JobType.API_INTEGRATION.value,
        tasks=[
            _task(1, "Fetch API Data", TaskType.FETCH_API_DATA, fetch),
            _task(2, "Create JSON File", TaskType.CREATE_FILE, file)
        ]
    )


def build_file_to_upload_job(job_id: int, name: str, compress: ZipCompressionConfig,
                             upload: ApiUploadConfig) -> Job:
    """Two-stage job: compress an existing file and upload the archive."""
    return Job(
        job_id=job_id,
        name=name,
        description="Compresses file to ZIP and uploads to API",
        job_type=JobType.FILE_PROCESSING.value,
        tasks=[
            _task(1, "Compress to ZIP", TaskType.COMPRESS_FILE, compress),
            _task(2, "Upload ZIP File", TaskType.UPLOAD, upload)
        ]
    )


def build_sftp_pipeline_job(job_id: int, name: str, api_url: str, output_directory: str,
                            sftp_host: str, sftp_username: str, sftp_password: str,
                            sftp_remote_directory: str) -> Job:
    configs = create_sftp_pipeline_configurations(
        api_url, output_directory, sftp_host, sftp_username, sftp_password, sftp_remote_directory
    )
    return build_api_to_upload_job(job_id, name, configs)
