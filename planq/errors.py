"""Exception hierarchy for plan compilation."""

from __future__ import annotations


class PlanError(Exception):
    """Base class for every structural defect found in a plan."""


class NormalizationError(PlanError):
    """Raised when a dependency declaration has an unsupported shape."""


class MalformedDependencyError(NormalizationError):
    """Raised when a cross-file mapping is missing or mistypes ``file``/``task``."""


class CrossFileFormatError(PlanError):
    """Raised when a cross-file key cannot be encoded or decoded."""


class CycleDetectedError(PlanError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, message: str, cycle: list | None = None):
        super().__init__(message)
        self.cycle = cycle or []


class UnresolvedReferenceError(PlanError):
    """Raised when a dependency names a task that does not exist after merge."""


class DuplicateTaskError(PlanError):
    """Raised when task identities collide.

    A task is identified by its (source file, number) pair, so this covers a
    number repeated within one fragment and fragments sharing a file path.
    """


class TaskValidationError(PlanError):
    """Raised when a task is missing required fields or conflicts within a wave."""


class ConfigError(PlanError):
    """Raised for invalid configuration files or settings."""


class PlanLoadError(PlanError):
    """Raised when a plan file cannot be read or parsed."""
