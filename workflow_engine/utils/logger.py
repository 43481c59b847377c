"""
Logging utilities for the Workflow Engine

JSON log lines for aggregation, plus an execution-scoped log context. The
context lives in a context variable, so job executions running side by
side on one event loop never see each other's job or execution IDs.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


# Attributes every LogRecord carries; anything else came from extra= or the context
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_log_context: ContextVar[Dict[str, Any]] = ContextVar("workflow_engine_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """
    Render each record as one JSON object.

    Fields passed through ``extra=`` (and fields copied from the log context)
    are grouped under ``extra``.
    """

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info and record.exc_info[0] is not None:
            error_type, error, _ = record.exc_info
            entry["exception"] = {
                "type": error_type.__name__,
                "message": str(error),
                "traceback": self.formatException(record.exc_info)
            }

        if self.include_extra:
            fields = {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}
            if fields:
                entry["extra"] = fields

        return json.dumps(entry, default=str, ensure_ascii=False)


class JobContextFilter(logging.Filter):
    """Copy the current log context onto records that don't already set those keys."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if key not in record.__dict__:
                setattr(record, key, value)
        return True


def _build_handlers(log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    return handlers


def setup_logger(
    name: str,
    level: str = "INFO",
    structured: bool = True,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Attach console (and optionally file) handlers to a logger.

    Calling it again for a logger that already has real handlers is a no-op,
    so the CLI and embedding applications can both call it safely.

    Args:
        name: Logger name, usually ``"workflow_engine"``
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        structured: JSON lines when True, plain text otherwise
        log_file: Also write to this file, creating its directory
    """
    logger = logging.getLogger(name)
    if any(not isinstance(h, logging.NullHandler) for h in logger.handlers):
        return logger

    numeric_level = logging.getLevelName(level.upper())
    logger.setLevel(numeric_level)

    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    context_filter = JobContextFilter()

    for handler in _build_handlers(log_file):
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_log_context(**kwargs):
    """Add keys to the log context of the current task."""
    _log_context.set({**_log_context.get(), **kwargs})


def clear_log_context():
    _log_context.set({})


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


class LoggerContext:
    """
    Scoped log context.

    Keys set on entry are visible to every record logged inside the block
    (including from tasks spawned there) and are removed on exit.
    """

    def __init__(self, **kwargs):
        self.values = kwargs
        self._token = None

    def __enter__(self):
        self._token = _log_context.set({**_log_context.get(), **self.values})
        return self

    def __exit__(self, *exc_info):
        _log_context.reset(self._token)
