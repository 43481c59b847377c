"""Tests for structured logging and execution-scoped log context."""

import asyncio
import json
import logging

import pytest

from workflow_engine.utils.logger import (
    JobContextFilter, LoggerContext, StructuredFormatter, clear_log_context,
    get_log_context, set_log_context, setup_logger
)


def make_record(message="hello", **extra):
    record = logging.LogRecord("workflow_engine.test", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredLogging:
    """Test the JSON formatter and context filter."""

    def test_formatter_emits_json_with_extra(self):
        record = make_record(job_id=3)

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["extra"] == {"job_id": 3}
        assert entry["module"] == "test_logger"
        assert entry["line"] == 10
        assert "function" in entry

    def test_filter_copies_context_without_overwriting(self):
        record = make_record(task_name="explicit")

        with LoggerContext(job_id=1, task_name="from-context"):
            JobContextFilter().filter(record)

        assert record.job_id == 1
        assert record.task_name == "explicit"

    def test_nested_context_is_restored(self):
        clear_log_context()
        set_log_context(job_id=1)

        with LoggerContext(execution_id="e1"):
            assert get_log_context() == {"job_id": 1, "execution_id": "e1"}
        assert get_log_context() == {"job_id": 1}

        clear_log_context()
        assert get_log_context() == {}

    @pytest.mark.asyncio
    async def test_concurrent_tasks_keep_separate_context(self):
        seen = {}

        async def run(job_id):
            with LoggerContext(job_id=job_id):
                await asyncio.sleep(0.01)
                seen[job_id] = get_log_context()["job_id"]

        await asyncio.gather(run(1), run(2))

        assert seen == {1: 1, 2: 2}

    def test_setup_logger_writes_file(self, tmp_path):
        log_file = tmp_path / "logs" / "engine.log"
        logger = setup_logger("workflow_engine", level="DEBUG", log_file=str(log_file))

        logger.info("written", extra={"job_id": 5})
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["message"] == "written"
        assert entry["extra"]["job_id"] == 5
        assert setup_logger("workflow_engine") is logger
        assert len([h for h in logger.handlers if not isinstance(h, logging.NullHandler)]) == 2
