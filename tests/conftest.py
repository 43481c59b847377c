"""Shared test fixtures."""

import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
import pytest

from workflow_engine.core.orchestrator import JobOrchestrator
from workflow_engine.handlers.base import BaseTaskHandler
from workflow_engine.handlers.registry import TaskHandlerRegistry
from workflow_engine.models.execution import TaskResult
from workflow_engine.models.job import Job, JobTask
from workflow_engine.services.stores import InMemoryJobStore
from workflow_engine.services.task_executor import RetryPolicy, TaskExecutor
from workflow_engine.utils.database import DatabaseManager


class ScriptedHandler(BaseTaskHandler):
    """
    Handler whose outcomes are scripted per call.

    Each outcome is True (success), False or a string (failure with that
    message) or an exception instance (raised). Once the script runs out
    every call succeeds.
    """

    def __init__(self, task_type, outcomes=None, delay=0.0, output=None, journal=None):
        super().__init__()
        self.task_type = task_type
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.output = output
        self.journal = journal
        self.calls = 0
        self.success_calls = 0
        self.failure_calls = 0
        self.seen_artifacts = []

    async def execute(self, config, context):
        self.calls += 1
        self.seen_artifacts.append(context.last_artifact)
        if self.journal is not None:
            self.journal.append(context.task_name)
        if self.delay:
            await asyncio.sleep(self.delay)

        outcome = self.outcomes.pop(0) if self.outcomes else True
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is True:
            return TaskResult.success(output=self.output)
        return TaskResult.failure(outcome if isinstance(outcome, str) else "scripted failure")

    async def on_success(self, config, context):
        self.success_calls += 1
        return True

    async def on_failure(self, config, context):
        self.failure_calls += 1
        return False


def build_job(task_types, job_id=1, name="ETL-1", max_retries=0, timeout_seconds=300):
    tasks = [
        JobTask(
            task_id=position,
            name=f"task-{position}",
            task_type=task_type,
            execution_order=position,
            max_retries=max_retries,
            timeout_seconds=timeout_seconds
        )
        for position, task_type in enumerate(task_types, start=1)
    ]
    return Job(job_id=job_id, name=name, tasks=tasks)


class FakeConnection:
    """Records statements; serves canned rows keyed by table name."""

    def __init__(self, rows=None, error=None):
        self.rows = rows or {}
        self.error = error
        self.statements = []

    def _record(self, query, args):
        if self.error is not None:
            raise self.error
        self.statements.append((" ".join(query.split()), args))

    async def execute(self, query, *args):
        self._record(query, args)

    async def executemany(self, query, args):
        self._record(query, args)

    async def fetchrow(self, query, *args):
        self._record(query, args)
        rows = self._rows_for(query)
        return rows[0] if rows else None

    async def fetch(self, query, *args):
        self._record(query, args)
        return self._rows_for(query)

    def _rows_for(self, query):
        query = " ".join(query.split())
        for table, rows in self.rows.items():
            if f"FROM {table} " in query:
                return rows
        return []

    @asynccontextmanager
    async def transaction(self):
        yield


class FakePool:
    """Stands in for an asyncpg pool handing out a single connection."""

    def __init__(self, connection):
        self.connection = connection
        self.closed = False

    @asynccontextmanager
    async def acquire(self):
        yield self.connection

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def detach_engine_log_handlers():
    """CLI runs attach stream handlers; drop them so later tests start clean."""
    yield
    logger = logging.getLogger("workflow_engine")
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)


@pytest.fixture
def scripted():
    return ScriptedHandler


@pytest.fixture
def make_job():
    return build_job


@pytest.fixture
def fast_executor():
    return TaskExecutor(retry_policy=RetryPolicy(delay_seconds=0))


@pytest.fixture
def registry():
    return TaskHandlerRegistry()


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def orchestrator(registry, fast_executor, store):
    return JobOrchestrator(registry=registry, task_executor=fast_executor, execution_sink=store)


@pytest.fixture
def http_recorder():
    """
    Routes for an httpx.MockTransport.

    ``routes`` maps (method, url) to a response factory; every request is
    appended to ``requests``.
    """

    class Recorder:
        def __init__(self):
            self.routes = {}
            self.requests = []

        def handle(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            factory = self.routes.get((request.method, str(request.url)))
            if factory is None:
                return httpx.Response(404, text="not found")
            return factory(request)

        def client(self) -> httpx.AsyncClient:
            return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

        def count(self, method, url):
            return sum(1 for r in self.requests if r.method == method and str(r.url) == url)

    return Recorder()


@pytest.fixture
def fake_connection():
    return FakeConnection


@pytest.fixture
def database_for():
    """Build a DatabaseManager whose pool serves the given fake connection."""

    def build(connection):
        manager = DatabaseManager("postgresql://localhost/engine")
        manager.pool = FakePool(connection)
        return manager

    return build


@pytest.fixture
def fake_pool():
    return FakePool
