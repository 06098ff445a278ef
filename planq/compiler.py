"""Plan compiler: merge fragments into one validated, wave-annotated plan."""

from __future__ import annotations

import logging

from .config import Config
from .dag import TaskRef, calculate_waves, ref_label, validate_file_overlaps, wave_refs
from .errors import TaskValidationError
from .merge import merge_plans, validate_dependencies
from .models import DEFAULT_MAX_CONCURRENCY, Plan
from .qc import apply_quality_control

logger = logging.getLogger(__name__)


def check_wave_order(plan: Plan, prerequisites: dict[TaskRef, list[TaskRef]]) -> None:
    """Every dependency must sit in an earlier wave than its dependent."""
    wave_of: dict[TaskRef, int] = {}
    for i, wave in enumerate(plan.waves):
        for ref in wave_refs(wave):
            wave_of.setdefault(ref, i)

    for ref, deps in prerequisites.items():
        if ref not in wave_of:
            continue
        for dep in deps:
            if dep in wave_of and wave_of[dep] >= wave_of[ref]:
                raise TaskValidationError(
                    f"task {ref_label(ref)} in {plan.waves[wave_of[ref]].name!r} depends on "
                    f"task {ref_label(dep)} in {plan.waves[wave_of[dep]].name!r}"
                )


def compile_plan(fragments: list[Plan], config: Config | None = None) -> Plan:
    """Merge, validate and annotate plan fragments for execution.

    Steps, each fatal on failure:
      1. merge fragments (duplicate numbers within one file rejected)
      2. validate required task fields
      3. resolve every dependency and reject cycles
      4. calculate waves, or check declared ones
      5. resolve quality control against the global config
    """
    plan = merge_plans(fragments)

    for task in plan.tasks:
        try:
            task.validate()
        except TaskValidationError as e:
            if task.source_file:
                raise TaskValidationError(f"{task.source_file}: {e}") from e
            raise

    prerequisites = validate_dependencies(plan)

    max_concurrency = DEFAULT_MAX_CONCURRENCY
    if config is not None and config.max_concurrency > 0:
        max_concurrency = config.max_concurrency

    if plan.waves:
        check_wave_order(plan, prerequisites)
        validate_file_overlaps(plan.waves, plan.tasks)
    else:
        plan.waves = calculate_waves(plan.tasks, prerequisites, max_concurrency)

    apply_quality_control(plan, config.quality_control if config is not None else None)

    logger.info(
        "compiled plan %r: %d task(s), %d wave(s), %d file(s)",
        plan.name, len(plan.tasks), len(plan.waves), len(plan.file_to_task_map),
    )
    return plan
