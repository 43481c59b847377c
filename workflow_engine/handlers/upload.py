"""
Upload handler.

Transmits a local file to an HTTP endpoint as multipart form data.
"""

from pathlib import Path
from typing import Optional

import aiofiles
import httpx

from .base import BaseTaskHandler, TaskContext, build_request_headers
from ..models.configs import ApiUploadConfig
from ..models.execution import TaskResult
from ..models.job import TaskType


class ApiUploadHandler(BaseTaskHandler):
    """Multipart HTTP upload of a local file."""

    task_type = TaskType.UPLOAD.value
    config_model = ApiUploadConfig

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__()
        self.http_client = http_client

    async def execute(self, config: ApiUploadConfig, context: TaskContext) -> TaskResult:
        path = Path(config.file_path)
        if not path.is_file():
            self.logger.error(f"File not found for upload: {path}")
            return TaskResult.failure(f"File not found for upload: {path}", error_code="HANDLER_FAULT")

        self.logger.info(f"Uploading file {path} to {config.upload_url}", extra={
            "execution_id": context.execution_id
        })

        async with aiofiles.open(path, "rb") as f:
            payload = await f.read()

        files = {config.file_field_name: (path.name, payload, "application/octet-stream")}
        headers = build_request_headers(config.headers, config.auth_token)

        try:
            response = await self._send(config, headers, files)
        except httpx.HTTPError as e:
            return TaskResult.failure(
                f"Upload to {config.upload_url} failed: {e.__class__.__name__}: {e}",
                error_code="HANDLER_FAULT"
            )

        if response.is_success:
            self.logger.info(f"Successfully uploaded file {path} ({len(payload)} bytes)")
            return TaskResult.success(output=response.text or None)

        self.logger.error("Upload rejected", extra={
            "upload_url": config.upload_url,
            "status_code": response.status_code,
            "response": response.text[:500]
        })
        return TaskResult.failure(
            f"Upload to {config.upload_url} failed with status {response.status_code} {response.reason_phrase}",
            error_code="HANDLER_FAULT"
        )

    async def _send(self, config: ApiUploadConfig, headers, files) -> httpx.Response:
        kwargs = {
            "headers": headers,
            "data": config.form_data,
            "files": files,
            "timeout": config.timeout_seconds
        }
        if self.http_client is not None:
            return await self.http_client.post(config.upload_url, **kwargs)

        async with httpx.AsyncClient() as client:
            return await client.post(config.upload_url, **kwargs)
