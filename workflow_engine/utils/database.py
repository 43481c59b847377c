"""
Database utilities for the Workflow Engine

PostgreSQL-backed definition source and execution sink. Job groups, jobs
and tasks are read as fully hydrated definitions; job executions are
upserted at creation and at every terminal transition.
"""

import json
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Any

import asyncpg

from ..models.job import Job, JobGroup, JobTask
from ..models.execution import JobExecution
from ..core.exceptions import DatabaseError


SCHEMA = """
CREATE TABLE IF NOT EXISTS job_groups (
    group_id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS jobs (
    job_id INTEGER PRIMARY KEY,
    job_group_id INTEGER REFERENCES job_groups(group_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    description TEXT,
    job_type TEXT NOT NULL,
    execution_order INTEGER NOT NULL DEFAULT 1,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS job_tasks (
    task_id INTEGER NOT NULL,
    job_id INTEGER NOT NULL REFERENCES jobs(job_id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    task_type TEXT NOT NULL,
    execution_order INTEGER NOT NULL DEFAULT 1,
    configuration_data TEXT,
    max_retries INTEGER NOT NULL DEFAULT 3,
    timeout_seconds INTEGER NOT NULL DEFAULT 300,
    continue_on_failure BOOLEAN NOT NULL DEFAULT FALSE,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (job_id, task_id)
);

CREATE TABLE IF NOT EXISTS job_executions (
    execution_id TEXT PRIMARY KEY,
    job_id INTEGER NOT NULL REFERENCES jobs(job_id) ON DELETE CASCADE,
    status TEXT NOT NULL,
    current_task_index INTEGER NOT NULL,
    total_tasks INTEGER NOT NULL,
    progress_percentage INTEGER NOT NULL,
    started_at TIMESTAMPTZ NOT NULL,
    completed_at TIMESTAMPTZ,
    duration_ms BIGINT,
    error_message TEXT,
    execution_data JSONB,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_job_executions_job_id ON job_executions (job_id, started_at DESC);
"""


class DatabaseManager:
    """
    Manages database connections and operations for the workflow engine.

    Implements both the definition source (``get_job``) and the execution
    sink (``save_execution``) contracts used by the orchestrator.
    """

    def __init__(self, connection_string: str, pool_size: int = 10, max_overflow: int = 20):
        """
        Configure the pool; nothing connects until initialize() is awaited.

        Args:
            connection_string: asyncpg DSN, e.g. postgresql://user@host/db
            pool_size: Connections kept for normal load
            max_overflow: Extra connections allowed above pool_size
        """
        self.connection_string = connection_string
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self, create_schema: bool = False) -> None:
        """Open the pool, optionally creating the tables."""
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=1,
                max_size=self.pool_size + self.max_overflow,
                command_timeout=60
            )
        except Exception as e:
            raise DatabaseError("initialization", f"Failed to create connection pool: {str(e)}")

        if create_schema:
            try:
                await self.create_schema()
            except DatabaseError:
                await self.close()
                raise

    async def close(self) -> None:
        """Release every pooled connection."""
        if self.pool:
            await self.pool.close()

    async def is_healthy(self) -> bool:
        """Return True when a trivial query round-trips."""
        if not self.pool:
            return False
        try:
            async with self.pool.acquire() as connection:
                await connection.execute("SELECT 1")
                return True
        except (asyncpg.PostgresError, OSError):
            return False

    @asynccontextmanager
    async def get_connection(self):
        """Borrow a pooled connection for the duration of the block."""
        if not self.pool:
            raise DatabaseError("connection", "Database pool not initialized")

        async with self.pool.acquire() as connection:
            yield connection

    async def create_schema(self) -> None:
        try:
            async with self.get_connection() as conn:
                await conn.execute(SCHEMA)
        except asyncpg.PostgresError as e:
            raise DatabaseError("create_schema", str(e))

    # Definition source
    async def upsert_job_group(self, group: JobGroup) -> bool:
        """Insert or update a job group together with its jobs and tasks."""
        try:
            async with self.get_connection() as conn:
                async with conn.transaction():
                    await conn.execute("""
                        INSERT INTO job_groups (group_id, name, description, is_active, created_at, updated_at)
                        VALUES ($1, $2, $3, $4, $5, $6)
                        ON CONFLICT (group_id) DO UPDATE SET
                            name = EXCLUDED.name,
                            description = EXCLUDED.description,
                            is_active = EXCLUDED.is_active,
                            updated_at = EXCLUDED.updated_at
                    """,
                    group.group_id, group.name, group.description, group.is_active,
                    group.created_at, group.updated_at)

                    for job in group.jobs:
                        await self._upsert_job(conn, job)
            return True
        except asyncpg.PostgresError as e:
            raise DatabaseError("upsert_job_group", str(e), table="job_groups")

    async def upsert_job(self, job: Job) -> bool:
        """Insert or update a job and replace its tasks."""
        try:
            async with self.get_connection() as conn:
                async with conn.transaction():
                    await self._upsert_job(conn, job)
            return True
        except asyncpg.PostgresError as e:
            raise DatabaseError("upsert_job", str(e), table="jobs")

    async def _upsert_job(self, conn, job: Job):
        await conn.execute("""
            INSERT INTO jobs (
                job_id, job_group_id, name, description, job_type,
                execution_order, is_active, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (job_id) DO UPDATE SET
                job_group_id = EXCLUDED.job_group_id,
                name = EXCLUDED.name,
                description = EXCLUDED.description,
                job_type = EXCLUDED.job_type,
                execution_order = EXCLUDED.execution_order,
                is_active = EXCLUDED.is_active,
                updated_at = EXCLUDED.updated_at
        """,
        job.job_id, job.job_group_id, job.name, job.description, job.job_type,
        job.execution_order, job.is_active, job.created_at, job.updated_at)

        await conn.execute("DELETE FROM job_tasks WHERE job_id = $1", job.job_id)
        await conn.executemany("""
            INSERT INTO job_tasks (
                task_id, job_id, position, name, description, task_type, execution_order,
                configuration_data, max_retries, timeout_seconds, continue_on_failure,
                is_active, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
        """, [
            (t.task_id, job.job_id, position, t.name, t.description, t.task_type,
             t.execution_order, t.configuration_data, t.max_retries, t.timeout_seconds,
             t.continue_on_failure, t.is_active, t.created_at, t.updated_at)
            for position, t in enumerate(job.tasks)
        ])

    async def get_job(self, job_id: int) -> Optional[Job]:
        """Get a fully hydrated job by ID."""
        try:
            async with self.get_connection() as conn:
                row = await conn.fetchrow("SELECT * FROM jobs WHERE job_id = $1", job_id)
                if not row:
                    return None
                return await self._hydrate_job(conn, row)
        except asyncpg.PostgresError as e:
            raise DatabaseError("get_job", str(e), table="jobs")

    async def get_job_group(self, group_id: int) -> Optional[JobGroup]:
        """Get a job group with all of its jobs and tasks."""
        try:
            async with self.get_connection() as conn:
                row = await conn.fetchrow("SELECT * FROM job_groups WHERE group_id = $1", group_id)
                if not row:
                    return None
                job_rows = await conn.fetch(
                    "SELECT * FROM jobs WHERE job_group_id = $1 ORDER BY execution_order, job_id", group_id
                )
                jobs = [await self._hydrate_job(conn, job_row) for job_row in job_rows]
                return JobGroup(
                    group_id=row["group_id"],
                    name=row["name"],
                    description=row["description"],
                    is_active=row["is_active"],
                    jobs=jobs,
                    created_at=row["created_at"],
                    updated_at=row["updated_at"]
                )
        except asyncpg.PostgresError as e:
            raise DatabaseError("get_job_group", str(e), table="job_groups")

    async def _hydrate_job(self, conn, row) -> Job:
        task_rows = await conn.fetch(
            "SELECT * FROM job_tasks WHERE job_id = $1 ORDER BY position", row["job_id"]
        )
        tasks = []
        for task_row in task_rows:
            data = dict(task_row)
            data.pop("position", None)
            tasks.append(JobTask(**data))

        data = dict(row)
        data["tasks"] = tasks
        return Job(**data)

    # Execution sink
    async def save_execution(self, execution: JobExecution) -> bool:
        """Insert or update a job execution record."""
        try:
            async with self.get_connection() as conn:
                await conn.execute("""
                    INSERT INTO job_executions (
                        execution_id, job_id, status, current_task_index, total_tasks,
                        progress_percentage, started_at, completed_at, duration_ms,
                        error_message, execution_data, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11::jsonb, $12)
                    ON CONFLICT (execution_id) DO UPDATE SET
                        status = EXCLUDED.status,
                        current_task_index = EXCLUDED.current_task_index,
                        progress_percentage = EXCLUDED.progress_percentage,
                        completed_at = EXCLUDED.completed_at,
                        duration_ms = EXCLUDED.duration_ms,
                        error_message = EXCLUDED.error_message,
                        execution_data = EXCLUDED.execution_data,
                        updated_at = EXCLUDED.updated_at
                """,
                execution.execution_id, execution.job_id, execution.status.value,
                execution.current_task_index, execution.total_tasks,
                execution.progress_percentage, execution.started_at, execution.completed_at,
                execution.duration_ms, execution.error_message,
                json.dumps(execution.execution_data, default=str), execution.updated_at)
            return True
        except asyncpg.PostgresError as e:
            raise DatabaseError("save_execution", str(e), table="job_executions")

    async def get_execution(self, execution_id: str) -> Optional[Dict[str, Any]]:
        try:
            async with self.get_connection() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM job_executions WHERE execution_id = $1", execution_id
                )
                return self._execution_row(row) if row else None
        except asyncpg.PostgresError as e:
            raise DatabaseError("get_execution", str(e), table="job_executions")

    async def list_executions(self, job_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        """List the most recent executions of a job."""
        try:
            async with self.get_connection() as conn:
                rows = await conn.fetch("""
                    SELECT * FROM job_executions
                    WHERE job_id = $1
                    ORDER BY started_at DESC
                    LIMIT $2
                """, job_id, limit)
                return [self._execution_row(row) for row in rows]
        except asyncpg.PostgresError as e:
            raise DatabaseError("list_executions", str(e), table="job_executions")

    async def get_execution_statistics(self, job_id: Optional[int] = None) -> Dict[str, int]:
        """Count executions by status."""
        try:
            async with self.get_connection() as conn:
                if job_id is None:
                    rows = await conn.fetch(
                        "SELECT status, COUNT(*) AS count FROM job_executions GROUP BY status"
                    )
                else:
                    rows = await conn.fetch(
                        "SELECT status, COUNT(*) AS count FROM job_executions WHERE job_id = $1 GROUP BY status",
                        job_id
                    )
                stats = {"total": 0}
                for row in rows:
                    stats[row['status']] = row['count']
                    stats["total"] += row['count']
                return stats
        except asyncpg.PostgresError as e:
            raise DatabaseError("get_execution_statistics", str(e), table="job_executions")

    @staticmethod
    def _execution_row(row) -> Dict[str, Any]:
        data = dict(row)
        if isinstance(data.get("execution_data"), str):
            data["execution_data"] = json.loads(data["execution_data"])
        return data
