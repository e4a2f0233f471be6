"""
Task contract.

A task is one piece of declaratively managed infrastructure. Concrete tasks are
dataclasses deriving from Task. Their fields hold the expected state declared
by the caller.

Lifecycle
1) set_defaults fills computed fields, such as a fingerprint
2) find queries the live target and returns the actual state or None
3) the delta driver compares actual and expected field by field
4) check_changes rejects illegal deltas
5) the renderer for the active target creates or updates the resource

Steps 2 to 5 live in tasks.delta so every task shares the same driver.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Protocol, runtime_checkable

from infra_reconciler.core.errors import Cancelled, ConfigurationError
from infra_reconciler.core.types import TaskState, TargetKind

if TYPE_CHECKING:
    from infra_reconciler.cloud.base import CloudClient
    from infra_reconciler.targets.base import Target


Renderer = Callable[[Any, Optional["Task"], "Task", dict[str, Any]], None]


@runtime_checkable
class HasDependencies(Protocol):
    """
    Explicit dependency declaration.

    When a task implements this, the structural walk is skipped for it.
    """

    def get_dependencies(self, tasks: Mapping[str, "Task"]) -> list["Task"]:
        """Return the tasks this object depends on."""


@runtime_checkable
class CompareWithId(Protocol):
    """
    Natural identity of a task.

    Used to correlate a discovered resource back to the declared task.
    """

    def compare_with_id(self) -> str | None:
        """Return the identity, usually the resource name."""


class NotADependency:
    """
    Marker for metadata objects.

    The dependency walk skips instances of subclasses without looking inside.
    """


@dataclass
class Context:
    """
    Run context handed to every task.

    tasks
    The full task universe keyed by task key.

    target
    The active execution back-end.

    cloud
    Cloud client, None when the target never talks to a cloud.

    logger
    Explicit logger, tasks log through it instead of a module global.

    cancel and deadline
    Cancellation signal and optional time.monotonic deadline.
    """

    tasks: Mapping[str, "Task"]
    target: "Target"
    cloud: "CloudClient | None" = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("infra_reconciler"))
    cancel: threading.Event = field(default_factory=threading.Event)
    deadline: float | None = None

    def __post_init__(self) -> None:
        self._keys: dict[int, str] = {id(t): k for k, t in self.tasks.items()}
        self._states: dict[str, TaskState] = {k: TaskState.declared for k in self.tasks}
        self._lock = threading.Lock()

    def key_for(self, task: "Task") -> str:
        """Return the graph key of a task in the universe."""
        key = self._keys.get(id(task))
        if key is None:
            raise ConfigurationError(f"task is not part of the task universe: {task!r}")
        return key

    def set_state(self, task: "Task", state: TaskState) -> None:
        key = self.key_for(task)
        with self._lock:
            self._states[key] = state
        self.logger.debug("task %s is %s", key, state, extra={"task_key": key, "state": state})

    def state_of(self, key: str) -> TaskState:
        with self._lock:
            return self._states[key]

    def cancelled(self) -> bool:
        if self.cancel.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check_cancelled(self) -> None:
        """Raise Cancelled once the signal is set or the deadline passed."""
        if self.cancel.is_set():
            raise Cancelled("run was cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise Cancelled("run deadline exceeded")

    def require_cloud(self) -> "CloudClient":
        if self.cloud is None:
            raise ConfigurationError("this target requires a cloud client")
        return self.cloud


class Task:
    """
    Base class for all task types.

    Subclasses are dataclasses. They must implement find and renderers, and may
    override set_defaults, check_changes, compare_with_id and get_dependencies.
    """

    def task_name(self) -> str:
        """Human readable name used in logs and reports."""
        if isinstance(self, CompareWithId):
            ident = self.compare_with_id()
            if ident:
                return ident
        return str(getattr(self, "name", None) or type(self).__name__)

    def set_defaults(self, ctx: Context) -> None:
        """Fill computed fields that the caller did not set."""

    def find(self, ctx: Context) -> Optional["Task"]:
        """Return the actual state, or None when the resource does not exist."""
        raise NotImplementedError(f"{type(self).__name__} does not implement find")

    def check_changes(self, actual: Optional["Task"], expected: "Task", changes: dict[str, Any]) -> None:
        """Reject illegal deltas. The default accepts every delta."""

    def renderers(self) -> Mapping[TargetKind, Renderer]:
        """Map each supported target kind to the apply function for it."""
        return {}

    def run(self, ctx: Context) -> bool:
        """
        Entry point used by the executor.

        Returns True when a renderer ran, False when the task had converged.
        """
        from infra_reconciler.tasks.delta import default_delta_run

        self.set_defaults(ctx)
        return default_delta_run(self, ctx)
