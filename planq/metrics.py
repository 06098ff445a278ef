"""Execution metrics: derive an ExecutionResult from task results."""

from __future__ import annotations

from enum import Enum

from .models import FAILURE_STATUSES, QC_VERDICTS, ExecutionResult, TaskResult


def _status_key(status) -> str:
    return status.value if isinstance(status, Enum) else status


def _fill_metrics(er: ExecutionResult, results: list[TaskResult]) -> None:
    """Recompute every derived field of *er* from *results*."""
    er.total_tasks = len(results)
    er.completed = 0
    er.failed = 0
    er.total_lines_added = 0
    er.total_lines_deleted = 0
    er.status_breakdown = {verdict: 0 for verdict in QC_VERDICTS}
    er.agent_usage = {}
    if er.failed_tasks is not None:
        er.failed_tasks = []

    unique_files: set[str] = set()
    total_duration = 0.0

    for result in results:
        status = _status_key(result.status)
        if status:
            er.status_breakdown[status] = er.status_breakdown.get(status, 0) + 1

        # tasks without an agent are counted under ""
        agent = result.task.agent
        er.agent_usage[agent] = er.agent_usage.get(agent, 0) + 1

        unique_files.update(result.task.files)
        er.total_lines_added += result.task.lines_added
        er.total_lines_deleted += result.task.lines_deleted
        total_duration += result.duration_sec

        if status in FAILURE_STATUSES:
            er.failed += 1
            if er.failed_tasks is not None:
                er.failed_tasks.append(result)
        else:
            er.completed += 1

    er.total_files = len(unique_files)
    er.avg_task_duration = total_duration / len(results) if results else 0.0


def aggregate_results(
    results: list[TaskResult],
    total_duration_sec: float = 0.0,
) -> ExecutionResult:
    """Build a fresh ExecutionResult for *results*."""
    er = ExecutionResult(duration_sec=total_duration_sec)
    _fill_metrics(er, results)
    return er


def recalculate(er: ExecutionResult, results: list[TaskResult]) -> ExecutionResult:
    """Recompute the metrics of an existing result in place.

    Produces the same fields as aggregate_results for the same input; the
    wall-clock ``duration_sec`` already on *er* is kept.
    """
    _fill_metrics(er, results)
    return er


def format_summary(er: ExecutionResult) -> list[str]:
    """Human-readable summary lines."""
    lines = [
        f"Tasks: {er.total_tasks} · completed {er.completed} · failed {er.failed}",
        "QC: " + ", ".join(f"{k} {v}" for k, v in er.status_breakdown.items()),
        f"Files: {er.total_files} · +{er.total_lines_added} -{er.total_lines_deleted}",
        f"Duration: {er.duration_sec:.1f}s · avg/task {er.avg_task_duration:.1f}s",
    ]
    if er.agent_usage:
        usage = ", ".join(
            f"{agent or '(none)'} {count}" for agent, count in sorted(er.agent_usage.items())
        )
        lines.append(f"Agents: {usage}")
    return lines
