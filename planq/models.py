"""Core data models for planq."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .errors import TaskValidationError

DEFAULT_MAX_CONCURRENCY = 10


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class ResultStatus(str, Enum):
    """Outcome of executing one task. GREEN/YELLOW/RED are QC verdicts."""

    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


QC_VERDICTS = (ResultStatus.GREEN.value, ResultStatus.YELLOW.value, ResultStatus.RED.value)
FAILURE_STATUSES = (ResultStatus.RED.value, ResultStatus.FAILED.value)

QC_MODES = ("auto", "explicit", "mixed", "intelligent")


@dataclass
class CrossFileDependency:
    """A dependency on a task defined in a different plan file."""

    file: str
    task_id: str

    def __str__(self) -> str:
        return f"file:{self.file}:task:{self.task_id}"


@dataclass
class KeyPoint:
    point: str = ""
    details: str = ""
    reference: str = ""


@dataclass
class Task:
    """A single unit of agent work within a plan."""

    number: str
    name: str = ""
    prompt: str = ""
    files: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)  # canonical keys only
    estimated_time: float = 0.0  # seconds
    agent: str = ""
    worktree_group: str = ""
    status: str = TaskStatus.PENDING.value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    source_file: str = ""  # plan file this task came from
    metadata: dict = field(default_factory=dict)
    key_points: list[KeyPoint] = field(default_factory=list)

    # Structured verification
    success_criteria: list[str] = field(default_factory=list)
    test_commands: list[str] = field(default_factory=list)
    type: str = ""  # "" | "regular" | "integration"
    integration_criteria: list[str] = field(default_factory=list)

    # Execution metadata
    execution_start_time: datetime | None = None
    execution_end_time: datetime | None = None
    execution_duration: float = 0.0
    executed_by: str = ""
    files_modified: int = 0
    files_created: int = 0
    files_deleted: int = 0
    lines_added: int = 0
    lines_deleted: int = 0

    def validate(self) -> None:
        """Raise TaskValidationError if a required field is empty."""
        if not self.number:
            raise TaskValidationError("task number is required")
        if not self.name:
            raise TaskValidationError(f"task {self.number}: task name is required")
        if not self.prompt:
            raise TaskValidationError(f"task {self.number}: task prompt is required")

    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED.value

    def can_skip(self) -> bool:
        return self.status in (TaskStatus.COMPLETED.value, TaskStatus.SKIPPED.value)

    def is_integration(self) -> bool:
        return self.type == "integration"

    def calculate_duration(self) -> float:
        """Seconds between execution start and end; 0.0 if either is unset.

        Negative spans are returned unchanged.
        """
        if self.execution_start_time is None or self.execution_end_time is None:
            return 0.0
        return (self.execution_end_time - self.execution_start_time).total_seconds()

    def record_file_operation(self, operation: str) -> None:
        if operation == "modified":
            self.files_modified += 1
        elif operation == "created":
            self.files_created += 1
        elif operation == "deleted":
            self.files_deleted += 1

    def total_file_operations(self) -> int:
        return self.files_modified + self.files_created + self.files_deleted


@dataclass
class Wave:
    """A group of tasks that may run concurrently."""

    name: str
    task_numbers: list[str] = field(default_factory=list)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    group_info: dict[str, list[str]] = field(default_factory=dict)
    source_file: str = ""  # declaring plan file; empty for computed waves
    task_refs: list[tuple[str, str]] = field(default_factory=list)  # (source_file, number)


@dataclass
class WorktreeGroup:
    """Organizational grouping of tasks. Not used for execution order."""

    group_id: str
    description: str = ""
    execution_model: str = ""  # deprecated
    isolation: str = ""        # deprecated
    rationale: str = ""


@dataclass
class QCAgentConfig:
    mode: str = "auto"
    explicit_list: list[str] = field(default_factory=list)
    additional_agents: list[str] = field(default_factory=list)
    blocked_agents: list[str] = field(default_factory=list)
    max_agents: int = 4
    cache_ttl_seconds: int = 3600
    selection_timeout_seconds: int = 90
    require_code_review: bool = True


@dataclass
class QualityControlConfig:
    enabled: bool = False
    review_agent: str = ""  # deprecated: use agents.explicit_list
    agents: QCAgentConfig = field(default_factory=QCAgentConfig)
    retry_on_red: int = 0


@dataclass
class PlannerComplianceSpec:
    planner_version: str
    strict_enforcement: bool = False
    required_features: list[str] = field(default_factory=list)


@dataclass
class DataFlowEntry:
    task_number: str
    symbol: str = ""
    description: str = ""


@dataclass
class DocumentationTarget:
    location: str
    section: str = ""


@dataclass
class DataFlowRegistry:
    producers: dict[str, list[DataFlowEntry]] = field(default_factory=dict)
    consumers: dict[str, list[DataFlowEntry]] = field(default_factory=dict)
    documentation_targets: dict[str, list[DocumentationTarget]] = field(default_factory=dict)


@dataclass
class Plan:
    """Complete representation of a (possibly merged) implementation plan."""

    name: str = ""
    tasks: list[Task] = field(default_factory=list)
    waves: list[Wave] = field(default_factory=list)
    default_agent: str = ""
    quality_control: QualityControlConfig = field(default_factory=QualityControlConfig)
    file_path: str = ""
    worktree_groups: list[WorktreeGroup] = field(default_factory=list)
    file_to_task_map: dict[str, list[str]] = field(default_factory=dict)
    planner_compliance: PlannerComplianceSpec | None = None
    data_flow_registry: DataFlowRegistry | None = None

    def get_task(self, number: str, source_file: str | None = None) -> Task | None:
        for t in self.tasks:
            if t.number != number:
                continue
            if source_file is None or t.source_file == source_file:
                return t
        return None


@dataclass
class ExecutionAttempt:
    """A single execution attempt, kept for retry history."""

    attempt: int
    agent: str = ""
    agent_output: str = ""
    qc_feedback: str = ""
    verdict: str = ""
    duration_sec: float = 0.0


@dataclass
class TaskResult:
    """Result of executing a single task."""

    task: Task
    status: str = ""
    output: str = ""
    error: str = ""
    duration_sec: float = 0.0
    retry_count: int = 0
    review_feedback: str = ""
    execution_history: list[ExecutionAttempt] = field(default_factory=list)
    session_id: str = ""


@dataclass
class ExecutionResult:
    """Aggregate metrics for a run, derived from a list of TaskResult."""

    total_tasks: int = 0
    completed: int = 0
    failed: int = 0
    duration_sec: float = 0.0
    failed_tasks: list[TaskResult] | None = field(default_factory=list)  # None → not collected
    status_breakdown: dict[str, int] = field(default_factory=dict)
    agent_usage: dict[str, int] = field(default_factory=dict)
    total_files: int = 0
    avg_task_duration: float = 0.0
    total_lines_added: int = 0
    total_lines_deleted: int = 0
