"""
Utilities package for the Workflow Engine

Contains logging, settings, database and definition file helpers.
"""

from .database import DatabaseManager
from .config import EngineSettings, load_settings
from .definitions import load_job_file, load_job_group_file, load_definition
from .logger import setup_logger, get_logger, set_log_context, clear_log_context, LoggerContext

__all__ = [
    "DatabaseManager",
    "EngineSettings",
    "load_settings",
    "load_job_file",
    "load_job_group_file",
    "load_definition",
    "setup_logger",
    "get_logger",
    "set_log_context",
    "clear_log_context",
    "LoggerContext"
]
