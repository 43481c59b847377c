"""Tests for the task executor: retries, timeout and cancellation."""

import asyncio

import pytest

from workflow_engine.core.cancellation import CancellationToken
from workflow_engine.handlers.base import TaskContext
from workflow_engine.handlers.files import CreateFileHandler
from workflow_engine.models.execution import TaskOutcome
from workflow_engine.models.job import JobTask
from workflow_engine.services.task_executor import RetryPolicy, TaskExecutor


def make_task(max_retries=3, timeout_seconds=300, configuration_data=None):
    return JobTask(
        task_id=7,
        name="flaky",
        task_type="Scripted",
        max_retries=max_retries,
        timeout_seconds=timeout_seconds,
        configuration_data=configuration_data
    )


class TestRetries:
    """Test retry counting."""

    @pytest.mark.asyncio
    async def test_always_failing_task_is_attempted_max_retries_plus_one(self, scripted, fast_executor):
        """maxRetries=3 means 1 initial attempt plus 3 retries."""
        handler = scripted("Scripted", outcomes=["down"] * 10)

        result = await fast_executor.run(make_task(max_retries=3), handler, TaskContext())

        assert result.outcome == TaskOutcome.FAILURE
        assert handler.calls == 4
        assert result.attempts == 4
        assert result.error_message == "down"
        assert result.error_code == "HANDLER_FAULT"

    @pytest.mark.asyncio
    async def test_success_after_transient_failures(self, scripted, fast_executor):
        handler = scripted("Scripted", outcomes=[False, RuntimeError("blip"), True], output="data")

        result = await fast_executor.run(make_task(max_retries=3), handler, TaskContext())

        assert result.succeeded
        assert result.output == "data"
        assert result.attempts == 3
        assert handler.calls == 3

    @pytest.mark.asyncio
    async def test_zero_retries_means_single_attempt(self, scripted, fast_executor):
        handler = scripted("Scripted", outcomes=[False])

        result = await fast_executor.run(make_task(max_retries=0), handler, TaskContext())

        assert result.outcome == TaskOutcome.FAILURE
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_continuations_run_per_attempt(self, scripted, fast_executor):
        handler = scripted("Scripted", outcomes=[False, True])

        await fast_executor.run(make_task(max_retries=1), handler, TaskContext())

        assert handler.failure_calls == 1
        assert handler.success_calls == 1

    @pytest.mark.asyncio
    async def test_result_carries_task_identity(self, scripted, fast_executor):
        handler = scripted("Scripted")

        result = await fast_executor.run(make_task(), handler, TaskContext())

        assert (result.task_id, result.task_name, result.task_type) == (7, "flaky", "Scripted")
        assert result.duration_ms >= 0


class TestValidation:
    """Test that malformed configurations are never retried."""

    @pytest.mark.asyncio
    async def test_invalid_configuration_fails_without_attempts(self, fast_executor):
        task = make_task(configuration_data={"format": "json"})

        result = await fast_executor.run(task, CreateFileHandler(), TaskContext())

        assert result.outcome == TaskOutcome.FAILURE
        assert result.error_code == "VALIDATION_ERROR"
        assert result.attempts == 0
        assert "output_path" in result.error_message or "Field required" in result.error_message

    @pytest.mark.asyncio
    async def test_malformed_json_configuration(self, fast_executor):
        task = make_task(configuration_data="{not json")

        result = await fast_executor.run(task, CreateFileHandler(), TaskContext())

        assert result.error_code == "VALIDATION_ERROR"


class TestTimeout:
    """Test per-attempt deadlines."""

    @pytest.mark.asyncio
    async def test_timeout_counts_as_retryable_failure(self, scripted, fast_executor):
        handler = scripted("Scripted", delay=5)
        task = make_task(max_retries=1, timeout_seconds=0.05)

        result = await asyncio.wait_for(fast_executor.run(task, handler, TaskContext()), timeout=3)

        assert result.outcome == TaskOutcome.FAILURE
        assert result.error_code == "TIMEOUT_ERROR"
        assert handler.calls == 2
        assert result.attempts == 2


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancellation_aborts_in_flight_attempt(self, scripted, fast_executor):
        handler = scripted("Scripted", delay=5)
        token = CancellationToken()
        token.cancel_after(0.05)

        result = await asyncio.wait_for(
            fast_executor.run(make_task(max_retries=3), handler, TaskContext(cancellation=token)),
            timeout=3
        )

        assert result.outcome == TaskOutcome.CANCELLED
        assert result.error_code == "CANCELLED"
        assert handler.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_token_prevents_any_attempt(self, scripted, fast_executor):
        handler = scripted("Scripted")
        token = CancellationToken()
        token.cancel("stop")

        result = await fast_executor.run(make_task(), handler, TaskContext(cancellation=token))

        assert result.outcome == TaskOutcome.CANCELLED
        assert result.attempts == 0
        assert handler.calls == 0

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_retry_delay(self, scripted):
        executor = TaskExecutor(retry_policy=RetryPolicy(delay_seconds=10))
        handler = scripted("Scripted", outcomes=[False] * 5)
        token = CancellationToken()
        token.cancel_after(0.05)

        result = await asyncio.wait_for(
            executor.run(make_task(max_retries=3), handler, TaskContext(cancellation=token)),
            timeout=3
        )

        assert result.outcome == TaskOutcome.CANCELLED
        assert handler.calls == 1


class TestRetryPolicy:
    """Test backoff computation."""

    def test_fixed_delay_is_constant(self):
        policy = RetryPolicy(delay_seconds=0.25)
        assert [policy.get_delay(n) for n in (1, 2, 5)] == [0.25, 0.25, 0.25]

    def test_exponential_delay_doubles_and_caps(self):
        policy = RetryPolicy(delay_seconds=0.1, backoff="exponential", max_delay_seconds=0.5)

        assert policy.get_delay(1) == pytest.approx(0.1)
        assert policy.get_delay(2) == pytest.approx(0.2)
        assert policy.get_delay(3) == pytest.approx(0.4)
        assert policy.get_delay(4) == pytest.approx(0.5)

    def test_default_is_short_fixed_delay(self):
        policy = RetryPolicy()
        assert policy.backoff == "fixed"
        assert policy.delay_seconds == 0.1

    def test_unknown_backoff_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(backoff="random")
