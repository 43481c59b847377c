"""
Main CLI entry point for the Workflow Engine

Provides command-line interface for running and validating job definitions
and for running the built-in API -> file -> compress -> upload pipeline.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import click

from ..core.exceptions import ConfigurationError, WorkflowEngineError
from ..core.orchestrator import JobOrchestrator, create_orchestrator
from ..handlers.registry import TaskHandlerRegistry
from ..models.execution import JobExecution, JobExecutionStatus
from ..models.job import JobGroup
from ..services.pipeline_builder import (
    PipelineRequest, build_api_to_upload_job, configurations_for_request
)
from ..services.stores import InMemoryJobStore
from ..utils.config import load_settings
from ..utils.database import DatabaseManager
from ..utils.definitions import load_definition
from ..utils.logger import setup_logger


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Settings file path (YAML)')
@click.option('--database-url', '-d', help='Database connection URL for execution records')
@click.option('--log-level', '-l', default=None, help='Log level')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, config, database_url, log_level, verbose):
    """Workflow Engine CLI"""

    ctx.ensure_object(dict)

    try:
        settings = load_settings(config)
    except ConfigurationError as e:
        click.echo(f"Error loading settings: {e.message}", err=True)
        sys.exit(2)

    updates = {}
    if database_url:
        updates['database_url'] = database_url
    if log_level:
        updates['log_level'] = log_level.upper()
    if updates:
        settings = settings.model_copy(update=updates)

    setup_logger(
        "workflow_engine",
        level=settings.log_level,
        structured=settings.structured_logging and not verbose,
        log_file=settings.log_file
    )

    ctx.obj['settings'] = settings
    ctx.obj['verbose'] = verbose


def _parse_pairs(values: Tuple[str, ...], option: str) -> Dict[str, str]:
    pairs = {}
    for value in values:
        key, sep, item = value.partition('=')
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got '{value}'", param_hint=option)
        pairs[key.strip()] = item
    return pairs


async def _open_sink(settings):
    if settings.database_url:
        db = DatabaseManager(settings.database_url)
        await db.initialize(create_schema=True)
        return db
    return InMemoryJobStore()


async def _register_definition(sink, definition):
    """Store the definition first; execution records reference its jobs."""
    if isinstance(sink, DatabaseManager):
        if isinstance(definition, JobGroup):
            await sink.upsert_job_group(definition)
        else:
            await sink.upsert_job(definition)
    elif isinstance(definition, JobGroup):
        sink.add_job_group(definition)
    else:
        sink.add_job(definition)


async def _close_sink(sink):
    if isinstance(sink, DatabaseManager):
        await sink.close()


async def _execute(orchestrator: JobOrchestrator, definition) -> List[JobExecution]:
    if isinstance(definition, JobGroup):
        return await orchestrator.execute_job_group(definition)
    return [await orchestrator.execute_job(definition)]


@cli.command('run')
@click.argument('definition_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--strict', is_flag=True, help='Fail tasks whose type has no registered handler')
@click.option('--json-output', is_flag=True, help='Print execution records as JSON')
@click.pass_context
def run_definition(ctx, definition_file, strict, json_output):
    """Execute a job or job group definition file"""

    async def _run():
        settings = ctx.obj['settings']
        if strict:
            settings = settings.model_copy(update={'strict_task_types': True})

        sink = None
        try:
            definition = load_definition(definition_file)
            sink = await _open_sink(settings)
            await _register_definition(sink, definition)
            orchestrator = create_orchestrator(settings, execution_sink=sink)

            executions = await _execute(orchestrator, definition)
            _display_executions(executions, json_output, ctx.obj['verbose'])

            if not executions or any(e.status != JobExecutionStatus.COMPLETED for e in executions):
                sys.exit(1)

        except WorkflowEngineError as e:
            click.echo(f"Error running {definition_file}: {e.message}", err=True)
            sys.exit(1)
        finally:
            if sink is not None:
                await _close_sink(sink)

    asyncio.run(_run())


@cli.command('validate')
@click.argument('definition_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate_definition(ctx, definition_file):
    """Validate a job or job group definition without running it"""

    settings = ctx.obj['settings']
    try:
        definition = load_definition(definition_file)
    except WorkflowEngineError as e:
        click.echo(f"Invalid definition: {e.message}", err=True)
        sys.exit(1)

    jobs = definition.jobs if isinstance(definition, JobGroup) else [definition]
    registry = TaskHandlerRegistry.with_defaults(strict=True)
    errors = 0

    for job in jobs:
        if not job.validate():
            click.echo(f"Job {job.job_id} '{job.name}': not valid for execution (unnamed or inactive)")
            errors += 1
            continue

        click.echo(f"Job {job.job_id} '{job.name}': {len(job.get_active_tasks_ordered())} active task(s)")
        for task in job.get_active_tasks_ordered():
            problem = _validate_task(registry, task, settings.strict_task_types)
            if problem:
                errors += 1
                click.echo(f"  [FAIL] {task.execution_order}. {task.name} ({task.task_type}): {problem}")
            else:
                click.echo(f"  [ OK ] {task.execution_order}. {task.name} ({task.task_type})")

    if errors:
        click.echo(f"{errors} problem(s) found", err=True)
        sys.exit(1)
    click.echo("Definition is valid")


def _validate_task(registry: TaskHandlerRegistry, task, strict: bool) -> Optional[str]:
    if not registry.is_registered(task.task_type):
        if strict:
            return f"no handler registered for task type '{task.task_type}'"
        return None
    try:
        registry.resolve(task.task_type).validate(task.configuration_data)
    except WorkflowEngineError as e:
        return e.message
    return None


@cli.command('pipeline')
@click.option('--api-url', required=True, help='API endpoint to fetch data from')
@click.option('--upload-url', required=True, help='Endpoint receiving the zipped data')
@click.option('--output-dir', type=click.Path(file_okay=False), default='.', help='Directory for the JSON and ZIP files')
@click.option('--auth-token', help='Bearer token for both fetch and upload')
@click.option('--header', 'headers', multiple=True, help='Extra header KEY=VALUE (repeatable)')
@click.option('--form', 'form_data', multiple=True, help='Extra form field KEY=VALUE (repeatable)')
@click.option('--timeout', type=click.IntRange(min=1), help='Timeout in seconds for both fetch and upload')
@click.option('--file-field-name', help='Multipart field name for the file')
@click.option('--name', default='api-pipeline', help='Pipeline job name')
@click.pass_context
def run_pipeline(ctx, api_url, upload_url, output_dir, auth_token, headers, form_data,
                 timeout, file_field_name, name):
    """Fetch API data, write it to JSON, compress it and upload the archive"""

    request = PipelineRequest(
        workflow_name=name,
        api_url=api_url,
        upload_url=upload_url,
        output_directory=str(Path(output_dir).absolute()),
        auth_token=auth_token,
        custom_headers=_parse_pairs(headers, '--header'),
        form_data=_parse_pairs(form_data, '--form'),
        timeout_seconds=timeout,
        file_field_name=file_field_name
    )

    async def _pipeline():
        settings = ctx.obj['settings']
        configs = configurations_for_request(request)
        job = build_api_to_upload_job(1, request.workflow_name, configs)

        sink = None
        try:
            sink = await _open_sink(settings)
            await _register_definition(sink, job)
            orchestrator = create_orchestrator(settings, execution_sink=sink)
            execution = await orchestrator.execute_job(job)
        except WorkflowEngineError as e:
            click.echo(f"Error running pipeline '{request.workflow_name}': {e.message}", err=True)
            sys.exit(1)
        finally:
            if sink is not None:
                await _close_sink(sink)

        _display_executions([execution], False, ctx.obj['verbose'])
        click.echo(f"JSON file: {configs.json_file_path}")
        click.echo(f"ZIP file: {configs.zip_file_path}")

        if execution.status != JobExecutionStatus.COMPLETED:
            sys.exit(1)

    asyncio.run(_pipeline())


@cli.command('handlers')
def list_handlers():
    """List the registered task types"""
    registry = TaskHandlerRegistry.with_defaults()
    for task_type in registry.task_types():
        handler = registry.resolve(task_type)
        click.echo(f"{task_type:<15} {handler.handler_name}")


def _display_executions(executions: List[JobExecution], as_json: bool, verbose: bool):
    """Display execution summaries"""
    if as_json:
        click.echo(json.dumps([e.to_dict() for e in executions], indent=2, default=str))
        return

    for execution in executions:
        click.echo(f"Execution {execution.execution_id}")
        click.echo(f"  Job ID: {execution.job_id}")
        click.echo(f"  Status: {execution.status.value}")
        click.echo(f"  Progress: {execution.progress_percentage}% "
                   f"({execution.current_task_index}/{execution.total_tasks} tasks)")
        click.echo(f"  Duration: {execution.duration_ms} ms")
        if execution.error_message:
            click.echo(f"  Error: {execution.error_message}")

        if verbose:
            for result in execution.task_results:
                line = f"    - {result.task_name} [{result.task_type}]: {result.outcome.value}, {result.attempts} attempt(s)"
                if result.error_message:
                    line += f" - {result.error_message}"
                click.echo(line)


def main():
    """Main CLI entry point"""
    cli()


if __name__ == '__main__':
    main()
