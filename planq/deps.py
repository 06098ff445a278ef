"""Dependency normalization and the cross-file reference codec.

Every ``depends_on`` entry, whatever shape the plan author used, ends up as
one canonical string key:

* a local task number (``"2"``, ``"2.5"``, ``"setup-db"``), or
* a cross-file key ``file:<filename>:task:<task-id>``.

The cross-file format is a stable public contract: anything that persists or
logs dependency keys relies on it.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

from .errors import CrossFileFormatError, MalformedDependencyError, NormalizationError
from .models import CrossFileDependency

_FILE_PREFIX = "file:"
_TASK_SEP = ":task:"


# -------------------------------------------------------------------
# Cross-file codec
# -------------------------------------------------------------------

def encode_cross_file(file: str, task_id: str) -> str:
    """Encode a file/task pair as ``file:<file>:task:<task_id>``."""
    if not file:
        raise CrossFileFormatError("cross-file dependency has empty filename")
    if not task_id:
        raise CrossFileFormatError(f"cross-file dependency on {file!r} has empty task ID")
    if _TASK_SEP in file:
        raise CrossFileFormatError(
            f"cross-file dependency filename must not contain {_TASK_SEP!r}: {file!r}"
        )
    return f"{_FILE_PREFIX}{file}{_TASK_SEP}{task_id}"


def looks_like_cross_file(key: str) -> bool:
    """True if *key* has the cross-file shape, whether or not it is well formed."""
    return key.startswith(_FILE_PREFIX) and _TASK_SEP in key


def decode_cross_file(key: str) -> CrossFileDependency:
    """Decode a canonical cross-file key.

    Raises CrossFileFormatError if *key* lacks the ``file:`` prefix or the
    ``:task:`` separator, or if either segment is empty.
    """
    if not looks_like_cross_file(key):
        raise CrossFileFormatError(f"not a cross-file dependency: {key}")

    file_part, _, task_id = key.partition(_TASK_SEP)
    filename = file_part[len(_FILE_PREFIX):]
    if not filename:
        raise CrossFileFormatError(f"cross-file dependency has empty filename: {key}")
    if not task_id:
        raise CrossFileFormatError(f"cross-file dependency has empty task ID: {key}")
    return CrossFileDependency(file=filename, task_id=task_id)


def is_cross_file_key(key: str) -> bool:
    """True exactly when decode_cross_file(key) would succeed."""
    if not looks_like_cross_file(key):
        return False
    file_part, _, task_id = key.partition(_TASK_SEP)
    return bool(file_part[len(_FILE_PREFIX):]) and bool(task_id)


# -------------------------------------------------------------------
# Normalization
# -------------------------------------------------------------------

def _normalize_number(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise NormalizationError(f"unsupported dependency format: non-finite number {value!r}")
    if value.is_integer():
        return str(int(value))
    # repr() is the shortest string that round-trips
    return repr(value)


def _normalize_scalar(value) -> str | None:
    """Normalize int/float/str; None for any other shape."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _normalize_number(value)
    if isinstance(value, str):
        return value
    return None


def normalize_task_number(value) -> str:
    """Normalize a task number written as an int, float or string."""
    number = _normalize_scalar(value)
    if number is None:
        raise NormalizationError(f"unsupported task number format: {type(value).__name__}")
    return number


def parse_cross_file_mapping(data: Mapping) -> CrossFileDependency:
    """Build a CrossFileDependency from a ``{file: ..., task: ...}`` mapping."""
    if "file" not in data:
        raise MalformedDependencyError("cross-file dependency missing required 'file' field")
    file = data["file"]
    if not isinstance(file, str):
        raise MalformedDependencyError(
            f"cross-file dependency 'file' must be a string, got {type(file).__name__}"
        )

    if "task" not in data:
        raise MalformedDependencyError("cross-file dependency missing required 'task' field")
    task = data["task"]
    task_id = _normalize_scalar(task)
    if task_id is None:
        raise MalformedDependencyError(
            f"cross-file dependency 'task' must be int/float/string, got {type(task).__name__}"
        )
    return CrossFileDependency(file=file, task_id=task_id)


def normalize_dependency(dep) -> str:
    """Convert one dependency declaration to its canonical key."""
    scalar = _normalize_scalar(dep)
    if scalar is not None:
        return scalar
    if isinstance(dep, CrossFileDependency):
        return encode_cross_file(dep.file, dep.task_id)
    if isinstance(dep, Mapping):
        cfd = parse_cross_file_mapping(dep)
        return encode_cross_file(cfd.file, cfd.task_id)
    raise NormalizationError(f"unsupported dependency format: {type(dep).__name__}")


def normalize_dependencies(deps) -> list[str]:
    """Normalize a ``depends_on`` list. ``None`` means no dependencies."""
    if deps is None:
        return []
    if isinstance(deps, (str, bytes, Mapping)) or not hasattr(deps, "__iter__"):
        raise NormalizationError(
            f"depends_on must be a list, got {type(deps).__name__}"
        )
    return [normalize_dependency(d) for d in deps]
