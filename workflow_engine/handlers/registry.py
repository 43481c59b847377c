"""
Task handler registry.

Maps task type tags to handler instances. Lookups are case-insensitive.
Unknown task types resolve to the General no-op handler unless the registry
is strict, in which case resolution raises UnknownTaskTypeError.
"""

from typing import Dict, List, Optional

from .base import BaseTaskHandler
from .general import GeneralTaskHandler
from ..core.exceptions import UnknownTaskTypeError
from ..utils.logger import get_logger


class TaskHandlerRegistry:
    """Registry of task handlers keyed by task type."""

    def __init__(self, strict: bool = False, fallback: Optional[BaseTaskHandler] = None):
        """
        Initialize the registry.

        Args:
            strict: Raise on unknown task types instead of falling back
            fallback: Handler used for unknown task types when not strict
        """
        self.strict = strict
        self.fallback = fallback or GeneralTaskHandler()
        self._handlers: Dict[str, BaseTaskHandler] = {}
        self.logger = get_logger(__name__)

    def register(self, handler: BaseTaskHandler, task_type: Optional[str] = None, replace: bool = False):
        """Register a handler for its declared task type (or an explicit one)."""
        tag = task_type or handler.task_type
        if not tag:
            raise ValueError(f"{handler.handler_name} does not declare a task type")

        key = tag.lower()
        if key in self._handlers and not replace:
            raise ValueError(f"A handler is already registered for task type '{tag}'")

        self._handlers[key] = handler
        self.logger.debug("Registered task handler", extra={
            "task_type": tag,
            "handler": handler.handler_name
        })

    def unregister(self, task_type: str) -> bool:
        return self._handlers.pop(task_type.lower(), None) is not None

    def resolve(self, task_type: str) -> BaseTaskHandler:
        """
        Resolve the handler for a task type.

        Raises:
            UnknownTaskTypeError: when strict and no handler is registered
        """
        handler = self._handlers.get((task_type or "").lower())
        if handler is not None:
            return handler

        if self.strict:
            raise UnknownTaskTypeError(task_type)

        self.logger.debug("Unknown task type, using fallback handler", extra={
            "task_type": task_type,
            "handler": self.fallback.handler_name
        })
        return self.fallback

    def is_registered(self, task_type: str) -> bool:
        return (task_type or "").lower() in self._handlers

    def task_types(self) -> List[str]:
        return sorted(h.task_type or key for key, h in self._handlers.items())

    async def close(self):
        """Close every registered handler."""
        for handler in {id(h): h for h in self._handlers.values()}.values():
            await handler.close()

    @classmethod
    def with_defaults(cls, strict: bool = False, **handler_options) -> "TaskHandlerRegistry":
        """
        Build a registry holding the built-in handlers.

        Keyword options are forwarded to the handlers that accept them:
        ``http_client`` (fetch and upload) and ``sftp_client_factory``.
        """
        from .fetch import FetchApiDataHandler
        from .files import CreateFileHandler, CompressFileHandler
        from .upload import ApiUploadHandler
        from .sftp import SftpUploadHandler

        registry = cls(strict=strict)
        http_client = handler_options.get("http_client")

        registry.register(FetchApiDataHandler(http_client=http_client))
        registry.register(CreateFileHandler())
        registry.register(CompressFileHandler())
        registry.register(ApiUploadHandler(http_client=http_client))
        registry.register(SftpUploadHandler(client_factory=handler_options.get("sftp_client_factory")))
        registry.register(registry.fallback)
        return registry
