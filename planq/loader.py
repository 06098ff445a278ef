"""Load plan fragments from YAML plan files."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import yaml

from .config import quality_control_from_dict
from .deps import normalize_dependencies, normalize_task_number
from .errors import NormalizationError, PlanLoadError
from .models import (
    DataFlowEntry,
    DataFlowRegistry,
    DocumentationTarget,
    KeyPoint,
    Plan,
    PlannerComplianceSpec,
    Task,
    WorktreeGroup,
)
from .qc import validate_quality_control

logger = logging.getLogger(__name__)

_PLAN_FILE_RE = re.compile(r"^plan-.*\.(md|markdown|yaml|yml)$")


# -------------------------------------------------------------------
# Format detection
# -------------------------------------------------------------------

def detect_format(path: str | Path) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in (".md", ".markdown"):
        return "markdown"
    if suffix in (".yaml", ".yml"):
        return "yaml"
    return "unknown"


# -------------------------------------------------------------------
# YAML plan parsing
# -------------------------------------------------------------------

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(h|m|s)")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value) -> float:
    """Parse "30m", "1h", "2h30m" or a bare number of minutes into seconds."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) * 60
    text = str(value).strip().lower()
    parts = _DURATION_RE.findall(text)
    if not parts or _DURATION_RE.sub("", text).strip():
        raise PlanLoadError(f"invalid duration: {value!r}")
    return sum(float(n) * _UNIT_SECONDS[unit] for n, unit in parts)


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _parse_task(raw: dict) -> Task:
    if "task_number" not in raw:
        raise PlanLoadError(f"task {raw.get('name', '?')!r} is missing task_number")
    number = normalize_task_number(raw["task_number"])

    try:
        depends_on = normalize_dependencies(raw.get("depends_on"))
    except NormalizationError as e:
        raise type(e)(f"task {number}: {e}") from e

    key_points = [
        KeyPoint(
            point=kp.get("point", ""),
            details=kp.get("details", ""),
            reference=kp.get("reference", ""),
        )
        for kp in _as_list(raw.get("key_points"))
        if isinstance(kp, dict)
    ]

    return Task(
        number=number,
        name=raw.get("name", "") or "",
        prompt=raw.get("prompt") or raw.get("description", "") or "",
        files=[str(f) for f in _as_list(raw.get("files"))],
        depends_on=depends_on,
        estimated_time=parse_duration(raw.get("estimated_time")),
        agent=raw.get("agent", "") or "",
        worktree_group=raw.get("worktree_group", "") or "",
        status=raw.get("status", "pending") or "pending",
        key_points=key_points,
        success_criteria=[str(c) for c in _as_list(raw.get("success_criteria"))],
        test_commands=[str(c) for c in _as_list(raw.get("test_commands"))],
        type=raw.get("type", "") or "",
        integration_criteria=[str(c) for c in _as_list(raw.get("integration_criteria"))],
    )


def _parse_entries(raw: dict, section: str) -> dict[str, list[DataFlowEntry]]:
    out: dict[str, list[DataFlowEntry]] = {}
    for symbol, entries in (raw or {}).items():
        for i, entry in enumerate(_as_list(entries)):
            if not isinstance(entry, dict):
                raise PlanLoadError(f"data_flow_registry.{section}[{symbol}][{i}]: expected mapping")
            try:
                number = normalize_task_number(entry.get("task"))
            except NormalizationError as e:
                raise PlanLoadError(
                    f"data_flow_registry.{section}[{symbol}][{i}]: invalid task: {e}"
                ) from e
            out.setdefault(symbol, []).append(DataFlowEntry(
                task_number=number,
                symbol=entry.get("symbol", ""),
                description=entry.get("description", ""),
            ))
    return out


def _parse_data_flow_registry(raw: dict) -> DataFlowRegistry:
    targets: dict[str, list[DocumentationTarget]] = {}
    for number, entries in (raw.get("documentation_targets") or {}).items():
        for entry in _as_list(entries):
            targets.setdefault(str(number), []).append(DocumentationTarget(
                location=entry.get("location", ""),
                section=entry.get("section", ""),
            ))
    return DataFlowRegistry(
        producers=_parse_entries(raw.get("producers"), "producers"),
        consumers=_parse_entries(raw.get("consumers"), "consumers"),
        documentation_targets=targets,
    )


def parse_plan_yaml(text: str, file_path: str = "") -> Plan:
    """Parse a YAML plan document into a plan fragment."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PlanLoadError(f"invalid YAML in {file_path or 'plan'}: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PlanLoadError(f"{file_path or 'plan'}: expected mapping, got {type(data).__name__}")

    plan = Plan(file_path=file_path)

    conductor = data.get("conductor") or {}
    if isinstance(conductor, dict):
        plan.default_agent = conductor.get("default_agent", "") or ""
        qc_raw = conductor.get("quality_control")
        if isinstance(qc_raw, dict):
            try:
                plan.quality_control = quality_control_from_dict(qc_raw)
            except (TypeError, ValueError) as e:
                raise PlanLoadError(f"conductor.quality_control: invalid value: {e}") from e
            validate_quality_control(plan.quality_control, "conductor.quality_control")

    body = data.get("plan") or {}
    if not isinstance(body, dict):
        raise PlanLoadError(f"{file_path or 'plan'}: 'plan' must be a mapping")
    metadata = body.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise PlanLoadError(f"{file_path or 'plan'}: 'plan.metadata' must be a mapping")
    plan.name = metadata.get("feature_name", "") or Path(file_path).stem

    for raw_task in _as_list(body.get("tasks")):
        if not isinstance(raw_task, dict):
            raise PlanLoadError(f"{file_path or 'plan'}: task entries must be mappings")
        plan.tasks.append(_parse_task(raw_task))

    for raw_group in _as_list(body.get("worktree_groups") or data.get("worktree_groups")):
        if not isinstance(raw_group, dict):
            raise PlanLoadError(f"{file_path or 'plan'}: worktree_groups entries must be mappings")
        plan.worktree_groups.append(WorktreeGroup(
            group_id=str(raw_group.get("group_id", "")),
            description=raw_group.get("description", ""),
            execution_model=raw_group.get("execution_model", ""),
            isolation=raw_group.get("isolation", ""),
            rationale=raw_group.get("rationale", ""),
        ))

    compliance = data.get("planner_compliance")
    if isinstance(compliance, dict):
        if not compliance.get("planner_version"):
            raise PlanLoadError("planner_compliance: planner_version is required")
        plan.planner_compliance = PlannerComplianceSpec(
            planner_version=str(compliance["planner_version"]),
            strict_enforcement=bool(compliance.get("strict_enforcement", False)),
            required_features=_as_list(compliance.get("required_features")),
        )

    registry = data.get("data_flow_registry")
    if isinstance(registry, dict):
        plan.data_flow_registry = _parse_data_flow_registry(registry)

    return plan


# -------------------------------------------------------------------
# Files
# -------------------------------------------------------------------

def load_plan_file(path: str | Path) -> Plan:
    """Load one plan file as a fragment whose file_path is the absolute path."""
    path = Path(path)
    fmt = detect_format(path)
    if fmt == "markdown":
        raise PlanLoadError(f"{path.name}: Markdown plans are not supported, convert to YAML")
    if fmt != "yaml":
        raise PlanLoadError(f"unknown file format: {path} (supported: .yaml, .yml)")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PlanLoadError(f"failed to read {path}: {e}") from e

    plan = parse_plan_yaml(text, str(path.resolve()))
    logger.debug("loaded %s: %d task(s)", path.name, len(plan.tasks))
    return plan


def filter_plan_files(paths: list[str | Path]) -> list[str]:
    """Expand files/directories into a sorted, deduplicated list of plan-* files."""
    if not paths:
        raise PlanLoadError("no paths provided")

    found: set[str] = set()
    for raw in paths:
        path = Path(raw).resolve()
        if not path.exists():
            raise PlanLoadError(f"path {str(path)!r} does not exist")
        if path.is_dir():
            for entry in path.rglob("plan-*"):
                if entry.is_file() and _PLAN_FILE_RE.match(entry.name):
                    found.add(str(entry))
        elif _PLAN_FILE_RE.match(path.name):
            found.add(str(path))

    if not found:
        raise PlanLoadError("no plan files found matching pattern plan-*.{md,markdown,yaml,yml}")
    return sorted(found)


def load_plan_fragments(paths: list[str | Path]) -> list[Plan]:
    """Load every plan file under *paths*, in sorted order."""
    return [load_plan_file(p) for p in filter_plan_files(paths)]
