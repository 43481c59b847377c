"""
Task handlers for the Workflow Engine

Each handler executes one task type. The registry maps task type tags to
handler instances.
"""

from .base import BaseTaskHandler, TaskContext, build_request_headers
from .general import GeneralTaskHandler
from .fetch import FetchApiDataHandler
from .files import CreateFileHandler, CompressFileHandler
from .upload import ApiUploadHandler
from .sftp import SftpSession, SftpUploadHandler
from .registry import TaskHandlerRegistry

__all__ = [
    "BaseTaskHandler",
    "TaskContext",
    "build_request_headers",
    "GeneralTaskHandler",
    "FetchApiDataHandler",
    "CreateFileHandler",
    "CompressFileHandler",
    "ApiUploadHandler",
    "SftpSession",
    "SftpUploadHandler",
    "TaskHandlerRegistry"
]
