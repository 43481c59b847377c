"""
FetchApiData handler.

Issues an HTTP request against a configured URL. The response body becomes
the task's output artifact for downstream tasks.
"""

from typing import Optional

import httpx

from .base import BaseTaskHandler, TaskContext, build_request_headers
from ..models.configs import ApiDataFetchConfig
from ..models.execution import TaskResult
from ..models.job import TaskType


class FetchApiDataHandler(BaseTaskHandler):
    """Fetch data from an HTTP API."""

    task_type = TaskType.FETCH_API_DATA.value
    config_model = ApiDataFetchConfig

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the handler.

        Args:
            http_client: Shared client; a short-lived client is used per call when omitted
        """
        super().__init__()
        self.http_client = http_client

    async def execute(self, config: ApiDataFetchConfig, context: TaskContext) -> TaskResult:
        self.logger.info("Starting API data fetch", extra={
            "api_url": config.api_url,
            "method": config.method,
            "execution_id": context.execution_id
        })

        try:
            response = await self._send(config)
        except httpx.HTTPError as e:
            return TaskResult.failure(
                f"Request to {config.api_url} failed: {e.__class__.__name__}: {e}",
                error_code="HANDLER_FAULT"
            )

        if not response.is_success:
            self.logger.warning("API request failed", extra={
                "api_url": config.api_url,
                "status_code": response.status_code
            })
            return TaskResult.failure(
                f"API request to {config.api_url} failed with status "
                f"{response.status_code} {response.reason_phrase}",
                error_code="HANDLER_FAULT"
            )

        content = response.text
        if not content:
            return TaskResult.failure(f"API {config.api_url} returned an empty body", error_code="HANDLER_FAULT")

        self.logger.info(f"Successfully fetched {len(content)} characters from API", extra={
            "api_url": config.api_url
        })
        return TaskResult.success(output=content)

    async def _send(self, config: ApiDataFetchConfig) -> httpx.Response:
        headers = build_request_headers(config.headers, config.auth_token)
        kwargs = {"headers": headers, "timeout": config.timeout_seconds}
        if config.method == "POST" and config.body is not None:
            if isinstance(config.body, (str, bytes)):
                kwargs["content"] = config.body
            else:
                kwargs["json"] = config.body

        if self.http_client is not None:
            return await self.http_client.request(config.method, config.api_url, **kwargs)

        async with httpx.AsyncClient() as client:
            return await client.request(config.method, config.api_url, **kwargs)
