"""Tests for the command-line interface."""

import json

import asyncpg
import pytest
from click.testing import CliRunner

from workflow_engine.cli.main import cli


def write_job(tmp_path, tasks, name="cli-job"):
    path = tmp_path / "job.json"
    path.write_text(json.dumps({"job_id": 1, "name": name, "tasks": tasks}))
    return str(path)


@pytest.fixture
def runner():
    return CliRunner()


class TestCli:
    """Test the CLI commands."""

    def test_handlers_lists_builtin_types(self, runner):
        result = runner.invoke(cli, ["handlers"])

        assert result.exit_code == 0
        for task_type in ("FetchApiData", "CreateFile", "CompressFile", "Upload", "UploadSftp", "General"):
            assert task_type in result.output
        assert "SftpUploadHandler" in result.output

    def test_validate_accepts_valid_definition(self, runner, tmp_path):
        path = write_job(tmp_path, [
            {"task_id": 1, "name": "fetch", "task_type": "FetchApiData",
             "configuration": {"api_url": "https://api.example.com"}},
            {"task_id": 2, "name": "custom", "task_type": "SomethingElse", "execution_order": 2}
        ])

        result = runner.invoke(cli, ["validate", path])

        assert result.exit_code == 0
        assert "[ OK ] 1. fetch (FetchApiData)" in result.output
        assert "Definition is valid" in result.output

    def test_validate_reports_bad_configuration(self, runner, tmp_path):
        path = write_job(tmp_path, [
            {"task_id": 1, "name": "fetch", "task_type": "FetchApiData", "configuration": {"method": "GET"}}
        ])

        result = runner.invoke(cli, ["validate", path])

        assert result.exit_code == 1
        assert "[FAIL] 1. fetch (FetchApiData)" in result.output

    def test_validate_rejects_malformed_file(self, runner, tmp_path):
        path = tmp_path / "job.yaml"
        path.write_text("- nope\n")

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 1
        assert "Invalid definition" in result.output

    def test_run_general_job(self, runner, tmp_path):
        path = write_job(tmp_path, [
            {"task_id": 1, "name": "one"},
            {"task_id": 2, "name": "two", "execution_order": 2}
        ])

        result = runner.invoke(cli, ["run", path])

        assert result.exit_code == 0
        assert "Status: completed" in result.output
        assert "Progress: 100% (2/2 tasks)" in result.output

    def test_run_json_output(self, runner, tmp_path):
        path = write_job(tmp_path, [{"task_id": 1, "name": "one"}])

        result = runner.invoke(cli, ["run", path, "--json-output"])

        assert result.exit_code == 0
        assert '"status": "completed"' in result.output

    def test_run_strict_fails_unknown_type(self, runner, tmp_path):
        path = write_job(tmp_path, [{"task_id": 1, "name": "odd", "task_type": "Mystery"}])

        result = runner.invoke(cli, ["-v", "run", path, "--strict"])

        assert result.exit_code == 1
        assert "Status: failed" in result.output
        assert "No handler registered for task type 'Mystery'" in result.output

    def test_pipeline_rejects_malformed_header(self, runner, tmp_path):
        result = runner.invoke(cli, [
            "pipeline",
            "--api-url", "https://api.example.com",
            "--upload-url", "https://upload.example.com",
            "--output-dir", str(tmp_path),
            "--header", "no-separator"
        ])

        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_bad_settings_file(self, runner, tmp_path):
        settings = tmp_path / "engine.yaml"
        settings.write_text("retry_backoff: sometimes\n")

        result = runner.invoke(cli, ["-c", str(settings), "handlers"])

        assert result.exit_code == 2
        assert "Error loading settings" in result.output


class TestCliDatabase:
    """Test runs that record executions in PostgreSQL."""

    @pytest.fixture
    def pools(self, monkeypatch, fake_connection, fake_pool):
        created = []

        def install(connection):
            async def create_pool(dsn, **kwargs):
                created.append(fake_pool(connection))
                return created[-1]

            monkeypatch.setattr(asyncpg, "create_pool", create_pool)
            return created

        return install

    def test_run_stores_job_before_its_executions(self, runner, tmp_path, pools, fake_connection):
        connection = fake_connection()
        created = pools(connection)
        path = write_job(tmp_path, [{"task_id": 1, "name": "one"}])

        result = runner.invoke(cli, ["--database-url", "postgresql://localhost/engine", "run", path])

        assert result.exit_code == 0
        queries = [query for query, _ in connection.statements]
        assert queries[0].startswith("CREATE TABLE IF NOT EXISTS job_groups")
        assert queries[1].startswith("INSERT INTO jobs")
        executions = [i for i, q in enumerate(queries) if q.startswith("INSERT INTO job_executions")]
        assert len(executions) == 2
        assert min(executions) > queries.index("DELETE FROM job_tasks WHERE job_id = $1")
        assert created[0].closed

    def test_database_errors_fail_the_run(self, runner, tmp_path, pools, fake_connection):
        created = pools(fake_connection(error=asyncpg.PostgresError("permission denied")))
        path = write_job(tmp_path, [{"task_id": 1, "name": "one"}])

        result = runner.invoke(cli, ["--database-url", "postgresql://localhost/engine", "run", path])

        assert result.exit_code == 1
        assert "permission denied" in result.output
        assert created[0].closed
