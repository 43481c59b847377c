"""
Base task handler interface.

Defines the contract every task handler implements: validate a task's raw
configuration, then execute it under a cancellation signal.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Type, Union

from pydantic import ValidationError as PydanticValidationError

from ..core.cancellation import CancellationToken
from ..core.exceptions import TaskValidationError
from ..models.configs import HandlerConfig
from ..models.execution import TaskResult
from ..utils.logger import get_logger


@dataclass
class TaskContext:
    """Per-run state shared by the tasks of one job execution."""

    cancellation: CancellationToken = field(default_factory=CancellationToken)
    job_id: Optional[int] = None
    execution_id: Optional[str] = None
    task_name: Optional[str] = None
    attempt: int = 0

    # Outputs of completed tasks, keyed by task name
    artifacts: Dict[str, Any] = field(default_factory=dict)
    last_artifact: Any = None

    def publish(self, task_name: str, artifact: Any):
        """Make a task's output available to later tasks."""
        if artifact is None:
            return
        self.artifacts[task_name] = artifact
        self.last_artifact = artifact


def build_request_headers(headers: Dict[str, str], auth_token: Optional[str] = None) -> Dict[str, str]:
    """Merge configured headers with a Bearer token, the token taking precedence."""
    merged = dict(headers)
    if auth_token:
        merged["Authorization"] = f"Bearer {auth_token}"
    return merged


class BaseTaskHandler(ABC):
    """
    Abstract base class for all task handlers.

    Subclasses declare the task type tag they serve and, optionally, a
    pydantic model used to validate the configuration blob.
    """

    task_type: str = ""
    config_model: Optional[Type[HandlerConfig]] = None

    def __init__(self):
        self.logger = get_logger(self.__class__.__module__)

    def parse_configuration(self, raw: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
        """Decode the opaque configuration blob into a mapping."""
        if raw is None or raw == "":
            return {}
        if isinstance(raw, dict):
            return dict(raw)
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise TaskValidationError(self.task_type, f"configuration is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise TaskValidationError(self.task_type, "configuration must be a JSON object")
        return data

    def validate(self, raw: Union[str, Dict[str, Any], None]) -> Any:
        """
        Validate a task configuration.

        Returns:
            The validated configuration object passed to ``execute``

        Raises:
            TaskValidationError: if the configuration is malformed
        """
        data = self.parse_configuration(raw)
        if self.config_model is None:
            return data

        try:
            return self.config_model.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field_name = ".".join(str(p) for p in first.get("loc", ())) or None
            raise TaskValidationError(self.task_type, first.get("msg", str(e)), field=field_name)

    @abstractmethod
    async def execute(self, config: Any, context: TaskContext) -> TaskResult:
        """
        Execute the task.

        Args:
            config: Configuration returned by ``validate``
            context: Run context carrying the cancellation signal and artifacts

        Returns:
            TaskResult.success(...) or TaskResult.failure(...). Raising is
            allowed and is treated as a handler fault.
        """
        pass

    async def on_success(self, config: Any, context: TaskContext) -> bool:
        """Continuation run after a successful execute. Its result is the step's result."""
        return True

    async def on_failure(self, config: Any, context: TaskContext) -> bool:
        """Continuation run after a failed execute. Its result is ignored."""
        return False

    async def close(self):
        """Release any resources held by the handler."""
        pass

    @property
    def handler_name(self) -> str:
        """Get the name of this handler."""
        return self.__class__.__name__
