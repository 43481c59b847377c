"""Tests for job definitions, execution records and steps."""

import json

import pytest

from workflow_engine.core.exceptions import ExecutionStateError, JobDefinitionError
from workflow_engine.models.execution import (
    JobExecution, JobExecutionStatus, TaskResult, can_transition_to
)
from workflow_engine.models.job import Job, JobGroup, JobTask, JobType, TaskType
from workflow_engine.models.step import Step, StepState, Workflow


class TestJobDefinitions:
    """Test jobs, tasks and groups."""

    def test_duplicate_task_ids_rejected(self):
        job = Job(job_id=1, name="ETL-1", tasks=[JobTask(1, "a")])

        with pytest.raises(JobDefinitionError):
            job.add_task(JobTask(1, "b"))
        with pytest.raises(JobDefinitionError):
            Job(job_id=2, name="dup", tasks=[JobTask(1, "a"), JobTask(1, "b")])

    def test_add_and_remove_task(self):
        job = Job(job_id=1, name="ETL-1")
        job.add_task(JobTask(3, "c"))

        assert job.get_task(3).job_id == 1
        assert job.remove_task(3)
        assert not job.remove_task(3)
        assert not job.has_tasks()

    def test_dict_configuration_is_serialized(self):
        task = JobTask(1, "fetch", TaskType.FETCH_API_DATA, configuration_data={"api_url": "https://x"})

        assert task.task_type == "FetchApiData"
        assert json.loads(task.configuration_data) == {"api_url": "https://x"}

    def test_round_trip_through_dict(self):
        job = Job.create_data_pipeline_job(4, "pipeline", "desc")
        job.add_task(JobTask.create_file_task(1, "write", "/tmp/out.json", format="text"))

        restored = Job.from_dict(job.to_dict())

        assert restored.job_type == JobType.DATA_PIPELINE.value
        assert restored.tasks[0].task_type == TaskType.CREATE_FILE.value
        assert json.loads(restored.tasks[0].configuration_data)["format"] == "text"
        assert restored.created_at == job.created_at

    def test_validate_requires_name_and_active(self):
        assert Job(job_id=1, name="ok").validate()
        assert not Job(job_id=1, name=" ").validate()
        assert not Job(job_id=1, name="off", is_active=False).validate()

    def test_group_ordering_and_soft_deactivation(self):
        group = JobGroup(group_id=1, name="nightly")
        group.add_job(Job(job_id=1, name="b", execution_order=2, job_type="DataPipeline"))
        group.add_job(Job(job_id=2, name="a", execution_order=1))

        assert [j.job_id for j in group.get_active_jobs_ordered()] == [2, 1]
        assert [j.job_id for j in group.get_jobs_by_type("datapipeline")] == [1]

        group.reorder_jobs({1: 0, 99: 5})
        assert [j.job_id for j in group.get_active_jobs_ordered()] == [1, 2]

        group.deactivate_all_jobs()
        assert group.get_job_count() == 2
        assert group.get_active_job_count() == 0

        with pytest.raises(JobDefinitionError):
            group.add_job(Job(job_id=1, name="again"))


class TestJobExecution:
    """Test the execution status state machine."""

    def test_transition_table(self):
        assert can_transition_to(JobExecutionStatus.PENDING, JobExecutionStatus.RUNNING)
        assert can_transition_to(JobExecutionStatus.PENDING, JobExecutionStatus.FAILED)
        assert not can_transition_to(JobExecutionStatus.PENDING, JobExecutionStatus.COMPLETED)
        assert not can_transition_to(JobExecutionStatus.COMPLETED, JobExecutionStatus.RUNNING)

    def test_progress_uses_floor_division(self):
        execution = JobExecution(job_id=1, total_tasks=3)
        execution.start()

        execution.advance_to_next_task()
        assert execution.progress_percentage == 33
        execution.advance_to_next_task()
        assert execution.progress_percentage == 66

    def test_index_never_exceeds_total(self):
        execution = JobExecution(job_id=1, total_tasks=1)
        execution.start()
        execution.advance_to_next_task()
        execution.advance_to_next_task()

        assert execution.current_task_index == 1

    def test_complete_forces_full_progress(self):
        execution = JobExecution(job_id=1, total_tasks=2)
        execution.start()
        execution.complete()

        assert execution.progress_percentage == 100
        assert execution.current_task_index == 2
        assert execution.duration_ms is not None
        assert execution.get_duration() is not None

    def test_terminal_record_is_immutable(self):
        execution = JobExecution(job_id=1, total_tasks=2)
        execution.start()
        execution.fail("first cause")

        with pytest.raises(ExecutionStateError):
            execution.complete()
        with pytest.raises(ExecutionStateError):
            execution.advance_to_next_task()
        with pytest.raises(ExecutionStateError):
            execution.record_task_result(TaskResult.success())
        assert execution.error_message == "first cause"

    def test_cannot_complete_without_starting(self):
        with pytest.raises(ExecutionStateError):
            JobExecution(job_id=1).complete()

    def test_to_dict(self):
        execution = JobExecution(job_id=7, total_tasks=1)
        execution.start()
        execution.record_task_result(TaskResult.failure("bad", "HANDLER_FAULT", task_name="t"))
        execution.fail("Task 't' failed: bad")

        data = execution.to_dict()

        assert data["status"] == "failed"
        assert data["task_results"][0]["outcome"] == "failure"
        assert data["execution_data"]["failed_tasks"] == ["t"]


class TestSteps:
    """Test steps and legacy workflows."""

    def test_illegal_step_transition(self):
        step = Step(1, "s")

        with pytest.raises(ValueError):
            step.transition(StepState.SUCCEEDED)

        step.transition(StepState.RUNNING)
        step.transition(StepState.FAILED)
        assert step.is_finished
        assert step.to_dict()["state"] == "failed"

    def test_workflow_folds_into_job(self):
        workflow = Workflow(workflow_id=3, name="legacy")
        workflow.add_step(JobTask(10, "second", execution_order=9))
        workflow.add_step(JobTask(5, "first", execution_order=1))

        job = workflow.to_job()

        assert job.job_id == 3
        assert [t.name for t in job.get_active_tasks_ordered()] == ["second", "first"]
        assert workflow.steps[0].execution_order == 9

    def test_workflow_rejects_duplicate_steps(self):
        workflow = Workflow(workflow_id=1, name="w")
        workflow.add_step(JobTask(1, "a"))

        with pytest.raises(JobDefinitionError):
            workflow.add_step(JobTask(1, "b"))
        with pytest.raises(JobDefinitionError):
            workflow.add_step(None)
