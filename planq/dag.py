"""DAG construction, cycle detection, and wave calculation."""

from __future__ import annotations

import logging
import os
from collections.abc import Hashable, Iterable, Mapping

from .errors import CycleDetectedError, DuplicateTaskError, TaskValidationError, UnresolvedReferenceError
from .models import DEFAULT_MAX_CONCURRENCY, Task, Wave

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2

# A task's identity once several plan files are merged: (source_file, number)
TaskRef = tuple[str, str]


def task_ref(task: Task) -> TaskRef:
    return (task.source_file, task.number)


# -------------------------------------------------------------------
# Cycle detection
# -------------------------------------------------------------------

def find_cycle_in_graph(
    nodes: Iterable[Hashable],
    edges: Mapping[Hashable, Iterable[Hashable]],
) -> list | None:
    """Three-color DFS over *nodes*; return a cycle path or None.

    *edges* maps a node to its successors. Successors that are not in
    *nodes* are ignored. The search uses an explicit stack, so chain length
    is not bounded by the interpreter's recursion limit. The returned path
    starts and ends with the same node.
    """
    order = list(dict.fromkeys(nodes))
    color = {n: _WHITE for n in order}

    for root in order:
        if color[root] != _WHITE:
            continue
        color[root] = _GRAY
        path = [root]
        stack = [iter(edges.get(root, ()))]
        while stack:
            for nxt in stack[-1]:
                state = color.get(nxt)
                if state is None or state == _BLACK:
                    continue
                if state == _GRAY:
                    return path[path.index(nxt):] + [nxt]
                color[nxt] = _GRAY
                path.append(nxt)
                stack.append(iter(edges.get(nxt, ())))
                break
            else:
                color[path.pop()] = _BLACK
                stack.pop()
    return None


def build_dag(tasks: list[Task]) -> dict[str, list[str]]:
    """Edges from each dependency to its dependents, for known tasks only."""
    known = {t.number for t in tasks}
    graph: dict[str, list[str]] = {t.number: [] for t in tasks}
    for task in tasks:
        for dep in task.depends_on:
            if dep in known:
                graph[dep].append(task.number)
    return graph


def find_cycle(tasks: list[Task]) -> list[str] | None:
    """Return the first cycle found among *tasks*, or None.

    Self-dependencies are reported before any graph is built. Dependencies
    that name no task in *tasks* (including cross-file keys) are not edges.
    """
    for task in tasks:
        if task.number in task.depends_on:
            return [task.number, task.number]
    return find_cycle_in_graph((t.number for t in tasks), build_dag(tasks))


def has_cycle(tasks: list[Task]) -> bool:
    return find_cycle(tasks) is not None


def format_cycle(path: list) -> str:
    return " -> ".join(ref_label(n) for n in path)


def ref_label(node) -> str:
    if isinstance(node, tuple):
        source, number = node
        return f"{os.path.basename(source)}:{number}" if source else number
    return str(node)


def check_cycle(tasks: list[Task]) -> None:
    """Raise CycleDetectedError if *tasks* contain a dependency cycle."""
    path = find_cycle(tasks)
    if path is not None:
        raise CycleDetectedError(f"Dependency cycle detected: {format_cycle(path)}", path)


# -------------------------------------------------------------------
# Validation
# -------------------------------------------------------------------

def validate_tasks(tasks: list[Task]) -> None:
    """Check numbers are present and unique and every dependency exists."""
    seen: set[str] = set()
    for task in tasks:
        if not task.number:
            raise TaskValidationError("task has empty task number")
        if task.number in seen:
            raise DuplicateTaskError(f"task {task.number}: duplicate task number")
        seen.add(task.number)

    for task in tasks:
        for dep in task.depends_on:
            if dep not in seen:
                raise UnresolvedReferenceError(
                    f"task {task.number} ({task.name}): depends on non-existent task {dep}"
                )


def _check_wave_files(wave_name: str, wave_tasks: list[Task]) -> None:
    missing = [t for t in wave_tasks if not t.files]
    if missing:
        entries = ", ".join(f"{t.number} ({t.name})" for t in missing)
        logger.warning(
            "wave %r: skipping file overlap validation, no files configured for %s",
            wave_name, entries,
        )
        return

    owners: dict[str, Task] = {}
    for task in wave_tasks:
        for file in task.files:
            normalized = os.path.normpath(file)
            owner = owners.get(normalized)
            if owner is not None and owner is not task:
                raise TaskValidationError(
                    f"wave {wave_name!r}: file {normalized!r} is assigned to multiple tasks "
                    f"({owner.number} - {owner.name} and {task.number} - {task.name}). "
                    "Move the conflicting tasks to separate waves or adjust their file lists."
                )
            owners[normalized] = task


def wave_refs(wave: Wave) -> list[TaskRef]:
    """Task refs of *wave*; declared waves name tasks of their own file."""
    if wave.task_refs:
        return list(wave.task_refs)
    return [(wave.source_file, number) for number in wave.task_numbers]


def validate_file_overlaps(waves: list[Wave], tasks: list[Task]) -> None:
    """Tasks within one wave must not modify the same file."""
    by_ref = {task_ref(t): t for t in tasks}

    for wave in waves:
        wave_tasks: list[Task] = []
        for ref in wave_refs(wave):
            if ref not in by_ref:
                raise TaskValidationError(
                    f"wave {wave.name!r}: task {ref_label(ref)} not found in plan"
                )
            wave_tasks.append(by_ref[ref])
        _check_wave_files(wave.name, wave_tasks)


# -------------------------------------------------------------------
# Waves
# -------------------------------------------------------------------

def parse_task_number(number: str) -> float:
    """Numeric sort key for task numbers like "3", "2.5" or "Task 10".

    Unparseable numbers sort last.
    """
    try:
        return float(number)
    except ValueError:
        pass
    for part in number.split():
        try:
            return float(part)
        except ValueError:
            continue
    return float("inf")


def local_prerequisites(tasks: list[Task]) -> dict[TaskRef, list[TaskRef]]:
    """Prerequisite map for tasks that share one number namespace."""
    validate_tasks(tasks)
    return {
        task_ref(t): [(t.source_file, dep) for dep in t.depends_on]
        for t in tasks
    }


def calculate_waves(
    tasks: list[Task],
    prerequisites: Mapping[TaskRef, list[TaskRef]] | None = None,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
) -> list[Wave]:
    """Group tasks into waves with Kahn's algorithm.

    Wave 1 holds tasks without dependencies, wave N holds tasks whose
    dependencies all sit in earlier waves. *prerequisites* maps each task
    ref to the refs it depends on; when omitted, dependencies are treated
    as local task numbers and validated first.
    """
    if not tasks:
        return []
    if prerequisites is None:
        prerequisites = local_prerequisites(tasks)

    by_ref = {task_ref(t): t for t in tasks}
    if len(by_ref) != len(tasks):
        raise DuplicateTaskError("task refs (source file, number) must be unique to calculate waves")
    dependents: dict[TaskRef, list[TaskRef]] = {ref: [] for ref in by_ref}
    in_degree: dict[TaskRef, int] = {ref: 0 for ref in by_ref}
    for ref, deps in prerequisites.items():
        for dep in deps:
            if dep not in by_ref or ref not in by_ref:
                continue
            dependents[dep].append(ref)
            in_degree[ref] += 1

    waves: list[Wave] = []
    remaining = dict(in_degree)
    while remaining:
        current = [ref for ref, degree in remaining.items() if degree == 0]
        if not current:
            path = find_cycle_in_graph(remaining, dependents)
            raise CycleDetectedError(
                f"Dependency cycle detected: {format_cycle(path or [])}", path
            )
        current.sort(key=lambda ref: parse_task_number(ref[1]))

        wave_tasks = [by_ref[ref] for ref in current]
        name = f"Wave {len(waves) + 1}"
        _check_wave_files(name, wave_tasks)

        group_info: dict[str, list[str]] = {}
        for t in wave_tasks:
            group_info.setdefault(t.worktree_group, []).append(t.number)

        waves.append(Wave(
            name=name,
            task_numbers=[t.number for t in wave_tasks],
            max_concurrency=max_concurrency,
            group_info=group_info,
            task_refs=list(current),
        ))

        for ref in current:
            del remaining[ref]
            for dependent in dependents[ref]:
                if dependent in remaining:
                    remaining[dependent] -= 1

    logger.debug("calculated %d wave(s) for %d task(s)", len(waves), len(tasks))
    return waves
