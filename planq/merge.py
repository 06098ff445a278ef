"""Merge per-file plan fragments into one plan and resolve the global graph."""

from __future__ import annotations

import copy
import logging
import os
from pathlib import PurePath

from .dag import TaskRef, find_cycle_in_graph, format_cycle, task_ref
from .deps import decode_cross_file, looks_like_cross_file
from .errors import CycleDetectedError, DuplicateTaskError, UnresolvedReferenceError
from .models import DataFlowRegistry, Plan, Task

logger = logging.getLogger(__name__)


def _check_fragment_numbers(fragment: Plan) -> None:
    seen: set[str] = set()
    for task in fragment.tasks:
        if task.number in seen:
            where = fragment.file_path or fragment.name or "plan"
            raise DuplicateTaskError(f"duplicate task number {task.number!r} in {where}")
        seen.add(task.number)


def _check_fragment_paths(fragments: list[Plan]) -> None:
    if len(fragments) < 2:
        return
    seen: set[str] = set()
    for i, fragment in enumerate(fragments):
        if not fragment.file_path:
            raise DuplicateTaskError(
                f"plan fragment {i + 1} ({fragment.name or 'unnamed'}) has no file path; "
                "every fragment needs a distinct file path to be merged"
            )
        if fragment.file_path in seen:
            raise DuplicateTaskError(f"plan file {fragment.file_path!r} given more than once")
        seen.add(fragment.file_path)


def _merge_registries(target: DataFlowRegistry, source: DataFlowRegistry) -> None:
    for symbol, entries in source.producers.items():
        target.producers.setdefault(symbol, []).extend(entries)
    for symbol, entries in source.consumers.items():
        target.consumers.setdefault(symbol, []).extend(entries)
    for number, targets in source.documentation_targets.items():
        target.documentation_targets.setdefault(number, []).extend(targets)


def merge_plans(fragments: list[Plan]) -> Plan:
    """Combine plan fragments, in order, into a single plan.

    Tasks, waves and worktree groups are concatenated. Each task is stamped
    with its fragment's file path as ``source_file``. Task numbers are not
    renumbered: local dependency keys stay scoped to their own fragment, and
    cross-file keys already name their target file. Fragments are left
    unmodified.
    """
    fragments = [f for f in fragments if f is not None]
    if not fragments:
        return Plan()

    _check_fragment_paths(fragments)
    first = fragments[0]
    merged = Plan(
        name=first.name if len(fragments) == 1 else "Merged Plan",
        file_path=first.file_path,
    )
    owners: dict[str, list[str]] = {}
    refs: set[TaskRef] = set()

    for fragment in fragments:
        _check_fragment_numbers(fragment)

        for task in fragment.tasks:
            task = copy.deepcopy(task)
            if not task.source_file:
                task.source_file = fragment.file_path
            ref = task_ref(task)
            if ref in refs:
                raise DuplicateTaskError(
                    f"task {task.number} from {task.source_file or 'plan'} is defined more than once"
                )
            refs.add(ref)
            merged.tasks.append(task)
            owners.setdefault(task.number, []).append(task.source_file)
            if task.source_file:
                merged.file_to_task_map.setdefault(task.source_file, []).append(task.number)

        for wave in fragment.waves:
            wave = copy.deepcopy(wave)
            if not wave.source_file:
                wave.source_file = fragment.file_path
            if not wave.task_refs:
                wave.task_refs = [(wave.source_file, n) for n in wave.task_numbers]
            merged.waves.append(wave)
        merged.worktree_groups.extend(copy.deepcopy(fragment.worktree_groups))

        if not merged.default_agent and fragment.default_agent:
            merged.default_agent = fragment.default_agent
        if not merged.quality_control.enabled and fragment.quality_control.enabled:
            merged.quality_control = copy.deepcopy(fragment.quality_control)
        if merged.planner_compliance is None and fragment.planner_compliance is not None:
            merged.planner_compliance = copy.deepcopy(fragment.planner_compliance)
        if fragment.data_flow_registry is not None:
            if merged.data_flow_registry is None:
                merged.data_flow_registry = DataFlowRegistry()
            _merge_registries(merged.data_flow_registry, copy.deepcopy(fragment.data_flow_registry))

    for number, sources in owners.items():
        if len(sources) > 1:
            logger.warning(
                "task number %r is defined in %d plan files (%s); "
                "local dependencies resolve within their own file",
                number, len(sources), ", ".join(os.path.basename(s) for s in sources),
            )

    logger.debug("merged %d fragment(s) into %d task(s)", len(fragments), len(merged.tasks))
    return merged


# -------------------------------------------------------------------
# Global resolution
# -------------------------------------------------------------------

def _path_suffix_matches(source_file: str, name: str) -> bool:
    """True if the trailing path components of *source_file* equal *name*."""
    want = PurePath(name).parts
    have = PurePath(source_file).parts
    return 0 < len(want) <= len(have) and have[-len(want):] == want


def resolve_file(name: str, source_files: list[str]) -> str | None:
    """Pick the loaded plan file a cross-file key names.

    An exact path wins. Otherwise *name* must match the trailing components
    of exactly one loaded file (e.g. its basename); several matches are an
    error rather than a guess.
    """
    if name in source_files:
        return name
    candidates = [f for f in source_files if _path_suffix_matches(f, name)]
    if len(candidates) > 1:
        raise UnresolvedReferenceError(
            f"cross-file reference to {name!r} is ambiguous: matches "
            + ", ".join(candidates)
            + "; use a longer path to pick one"
        )
    return candidates[0] if candidates else None


def resolve_dependency(
    task: Task,
    dep: str,
    index: dict[TaskRef, Task],
    source_files: list[str] | None = None,
) -> TaskRef:
    """Resolve one canonical key of *task* to the ref of the task it names."""
    if looks_like_cross_file(dep):
        cfd = decode_cross_file(dep)
        if source_files is None:
            source_files = list(dict.fromkeys(ref[0] for ref in index))
        target = resolve_file(cfd.file, source_files)
        if target is not None and (target, cfd.task_id) in index:
            return (target, cfd.task_id)
        raise UnresolvedReferenceError(
            f"task {task.number} ({task.name}): cross-file dependency '{dep}' "
            "does not match any task in the loaded plan files"
        )

    ref = (task.source_file, dep)
    if ref not in index:
        where = f" in {os.path.basename(task.source_file)}" if task.source_file else ""
        raise UnresolvedReferenceError(
            f"task {task.number} ({task.name}): dependency '{dep}' not found{where}"
        )
    return ref


def resolve_dependencies(plan: Plan) -> dict[TaskRef, list[TaskRef]]:
    """Map every task ref to the refs of its prerequisites."""
    index: dict[TaskRef, Task] = {}
    for task in plan.tasks:
        ref = task_ref(task)
        if ref in index:
            raise DuplicateTaskError(
                f"task {task.number} from {task.source_file or 'plan'} is defined more than once"
            )
        index[ref] = task
    source_files = list(dict.fromkeys(ref[0] for ref in index))

    return {
        task_ref(task): [
            resolve_dependency(task, dep, index, source_files) for dep in task.depends_on
        ]
        for task in plan.tasks
    }


def validate_dependencies(plan: Plan) -> dict[TaskRef, list[TaskRef]]:
    """Resolve the merged graph and reject cycles.

    Returns the prerequisite map so callers can reuse it (e.g. for waves).
    """
    prerequisites = resolve_dependencies(plan)

    for ref, deps in prerequisites.items():
        if ref in deps:
            raise CycleDetectedError(
                f"Dependency cycle detected: {format_cycle([ref, ref])}", [ref, ref]
            )

    dependents: dict[TaskRef, list[TaskRef]] = {ref: [] for ref in prerequisites}
    for ref, deps in prerequisites.items():
        for dep in deps:
            dependents[dep].append(ref)

    path = find_cycle_in_graph(prerequisites, dependents)
    if path is not None:
        raise CycleDetectedError(f"Dependency cycle detected: {format_cycle(path)}", path)
    return prerequisites
