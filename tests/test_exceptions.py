"""Tests for the error taxonomy and error registry."""

from workflow_engine.core.exceptions import (
    DatabaseError, ErrorRegistry, HandlerFault, TaskCancelledError, TaskTimeoutError,
    TaskValidationError, is_retryable
)


class TestErrorTaxonomy:
    """Test error codes and retry classification."""

    def test_retry_classification(self):
        assert is_retryable(HandlerFault("Upload", "boom"))
        assert is_retryable(TaskTimeoutError("t", 5))
        assert is_retryable(RuntimeError("unclassified"))
        assert not is_retryable(TaskValidationError("Upload", "bad"))
        assert not is_retryable(TaskCancelledError("t"))

    def test_to_dict(self):
        data = DatabaseError("save_execution", "gone", table="job_executions").to_dict()

        assert data["error"] == "DatabaseError"
        assert data["error_code"] == "DATABASE_ERROR"
        assert data["details"] == {"operation": "save_execution", "table": "job_executions"}


class TestErrorRegistry:
    """Test error tallies."""

    def test_counts_by_type_and_code(self):
        registry = ErrorRegistry()
        registry.record_error(TaskTimeoutError("a", 1))
        registry.record_error(TaskTimeoutError("b", 1))
        registry.record_error(OSError("disk"))

        stats = registry.get_error_statistics()

        assert stats["total_errors"] == 3
        assert stats["error_counts"] == {"TaskTimeoutError": 2, "OSError": 1}
        assert stats["error_codes"] == {"TIMEOUT_ERROR": 2, "UNCLASSIFIED": 1}
        assert stats["most_common_error"] == "TaskTimeoutError"

    def test_reset(self):
        registry = ErrorRegistry()
        registry.record_error(HandlerFault("x", "y"))
        registry.reset()

        assert registry.get_error_statistics()["most_common_error"] is None
