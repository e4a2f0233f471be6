"""
Error taxonomy.

We separate error types so callers can react correctly.
Example:
ConfigurationError and CycleError block before any task is executed.
DiscoveryError and ApplyError stop the run, tasks applied earlier stay applied.
ValidationFailed lists every violation of the cluster specification at once.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from infra_reconciler.engine.executor import RunResult


class ReconcilerError(Exception):
    """Base class for all reconciler exceptions."""


class ConfigurationError(ReconcilerError):
    """
    Raised when the task set itself is wrong.

    Examples are a field type the dependency walk cannot classify, a task with
    no renderer for the active target, or a change to an immutable field.
    """


class CannotChangeField(ConfigurationError):
    """Raised by check_changes when a delta touches an immutable field."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"field cannot be changed: {field_name}")
        self.field_name = field_name


class CycleError(ReconcilerError):
    """Raised when the dependency graph is not a DAG."""

    def __init__(self, keys: Iterable[str]) -> None:
        self.keys = sorted(keys)
        super().__init__(f"dependency cycle among tasks: {', '.join(self.keys)}")


class TaskError(ReconcilerError):
    """Base class for errors bound to a single task key."""

    phase = "run"

    def __init__(self, key: str, cause: BaseException | str) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"{self.phase} failed for task {key}: {cause}")


class DiscoveryError(TaskError):
    """Raised when a back-end call failed while finding actual state."""

    phase = "find"


class ApplyError(TaskError):
    """Raised when a back-end call failed while creating or updating."""

    phase = "apply"


class ValidationFailed(ReconcilerError):
    """Raised when the cluster specification has violations."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("cluster validation failed: " + "; ".join(self.errors))


class Cancelled(ReconcilerError):
    """Raised when the run was cancelled or its deadline passed."""


class RunFailed(ReconcilerError):
    """
    Raised by the engine when a run did not converge.

    result carries every task outcome, so callers can see which tasks were
    applied before the failure and which task failed.
    """

    def __init__(self, result: "RunResult") -> None:
        self.result = result
        super().__init__(result.report())
