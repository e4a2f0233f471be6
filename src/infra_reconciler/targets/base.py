"""
Target interfaces.

Goal
Define the execution back-end contract without binding tasks to one of them.

Exactly one target is active per run. A task renders through the function it
maps to target.kind in renderers(). Generic targets, such as the dry run
target, handle every task themselves and need no task renderer.

Missing renderers are a configuration error detected before the first task
runs, never in the middle of a run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Mapping, Optional, Protocol, runtime_checkable

from infra_reconciler.core.errors import ConfigurationError
from infra_reconciler.core.types import TargetKind

if TYPE_CHECKING:
    from infra_reconciler.tasks.base import Renderer, Task


class Target(Protocol):
    """
    Execution back-end interface.

    kind
    Selects the renderer each task uses.

    discovers
    When False the driver skips find and renders every task in full.
    File generating targets need the complete desired state on every run.

    finish
    Called once after every task succeeded. File generating targets write
    their artifact here.
    """

    kind: TargetKind
    discovers: ClassVar[bool]

    def finish(self) -> Any:
        """Complete the run on this target."""


@runtime_checkable
class GenericTarget(Protocol):
    """
    A target that renders any task on its own.

    render_task receives the task key next to the usual render arguments.
    """

    def render_task(
        self,
        key: str,
        actual: Optional["Task"],
        expected: "Task",
        changes: dict[str, Any],
    ) -> None:
        """Render one task."""


def renderer_for(task: "Task", target: Target, key: str) -> "Renderer":
    """Return the apply function for a task on the active target."""

    if isinstance(target, GenericTarget):
        generic = target

        def render(_target: Any, actual: Any, expected: Any, changes: dict[str, Any]) -> None:
            generic.render_task(key, actual, expected, changes)

        return render

    renderer = task.renderers().get(target.kind)
    if renderer is None:
        raise ConfigurationError(f"task {key} ({type(task).__name__}) has no renderer for target {target.kind}")
    return renderer


def missing_renderers(tasks: Mapping[str, "Task"], target: Target) -> list[str]:
    """
    Return sorted keys of tasks that cannot render on the target.

    Empty for generic targets.
    """
    if isinstance(target, GenericTarget):
        return []

    missing: list[str] = []
    for key, task in tasks.items():
        if target.kind not in task.renderers():
            missing.append(key)
    return sorted(missing)


def require_renderers(tasks: Mapping[str, "Task"], target: Target) -> None:
    """Raise one ConfigurationError naming every task that cannot render on the target."""
    missing = missing_renderers(tasks, target)
    if missing:
        raise ConfigurationError(f"tasks have no renderer for target {target.kind}: {', '.join(missing)}")
