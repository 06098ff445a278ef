"""Tests for data models."""

from datetime import datetime, timedelta

import pytest

from planq.errors import TaskValidationError
from planq.models import (
    CrossFileDependency,
    ExecutionResult,
    Plan,
    ResultStatus,
    Task,
    TaskStatus,
    Wave,
)


def test_task_defaults():
    """A new task is pending with empty collections."""
    t = Task(number="1")
    assert t.status == TaskStatus.PENDING.value
    assert t.depends_on == []
    assert t.files == []
    assert t.estimated_time == 0.0


def test_task_validate():
    """Number, name and prompt are required."""
    Task(number="1", name="n", prompt="p").validate()
    with pytest.raises(TaskValidationError, match="task number is required"):
        Task(number="", name="n", prompt="p").validate()
    with pytest.raises(TaskValidationError, match="task name is required"):
        Task(number="1", prompt="p").validate()
    with pytest.raises(TaskValidationError, match="task prompt is required"):
        Task(number="1", name="n").validate()


def test_task_status_helpers():
    """Completed and skipped tasks can be skipped on resume."""
    assert Task(number="1", status="completed").is_completed()
    assert Task(number="1", status="skipped").can_skip()
    assert not Task(number="1", status="in_progress").can_skip()
    assert Task(number="1", type="integration").is_integration()


def test_calculate_duration():
    """Duration is end minus start in seconds."""
    start = datetime(2024, 1, 1, 12, 0, 0)
    t = Task(number="1", execution_start_time=start, execution_end_time=start + timedelta(seconds=90))
    assert t.calculate_duration() == 90.0
    assert Task(number="1", execution_start_time=start).calculate_duration() == 0.0


def test_calculate_duration_negative():
    """An end before the start gives a negative duration."""
    start = datetime(2024, 1, 1, 12, 0, 0)
    t = Task(number="1", execution_start_time=start, execution_end_time=start - timedelta(seconds=5))
    assert t.calculate_duration() == -5.0


def test_file_operations():
    """File operations are tallied by kind; unknown kinds are ignored."""
    t = Task(number="1")
    for op in ("modified", "modified", "created", "deleted", "renamed"):
        t.record_file_operation(op)
    assert (t.files_modified, t.files_created, t.files_deleted) == (2, 1, 1)
    assert t.total_file_operations() == 4


def test_plan_get_task():
    """Lookup by number, optionally scoped to a source file."""
    plan = Plan(tasks=[
        Task(number="1", source_file="/p/plan-a.yaml"),
        Task(number="1", source_file="/p/plan-b.yaml"),
    ])
    assert plan.get_task("1").source_file == "/p/plan-a.yaml"
    assert plan.get_task("1", "/p/plan-b.yaml").source_file == "/p/plan-b.yaml"
    assert plan.get_task("9") is None


def test_wave_default_concurrency():
    """Waves default to 10 concurrent tasks."""
    assert Wave(name="Wave 1").max_concurrency == 10


def test_result_status_values():
    """Result statuses compare equal to their strings."""
    assert ResultStatus.GREEN == "GREEN"
    assert ResultStatus("FAILED") is ResultStatus.FAILED


def test_cross_file_dependency_str():
    """str() gives the canonical key."""
    assert str(CrossFileDependency(file="plan-a.yaml", task_id="2")) == "file:plan-a.yaml:task:2"


def test_execution_result_defaults():
    """failed_tasks is collected by default."""
    er = ExecutionResult()
    assert er.failed_tasks == []
    assert er.status_breakdown == {}
