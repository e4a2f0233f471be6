"""
Dry run target.

Records what each task would do without calling a cloud or writing files.
Because it renders every task the same way it needs no task renderer.

The recorded report is the transport shape used for operator review:
task key, action create or update, and the changed fields.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from infra_reconciler.core.serialization import changes_to_json
from infra_reconciler.core.types import TargetKind
from infra_reconciler.targets.base import GenericTarget, Target


@dataclass(frozen=True)
class PlannedChange:
    """
    One recorded change.

    action is create when the resource does not exist yet, update otherwise.
    """

    key: str
    task_type: str
    action: str
    changes: dict[str, Any]


@dataclass
class DryRunTarget(Target, GenericTarget):
    """Collect planned changes."""

    kind: TargetKind = TargetKind.dry_run
    discovers: ClassVar[bool] = True
    planned: list[PlannedChange] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def render_task(self, key: str, actual: Optional[Any], expected: Any, changes: dict[str, Any]) -> None:
        change = PlannedChange(
            key=key,
            task_type=type(expected).__name__,
            action="create" if actual is None else "update",
            changes=changes_to_json(changes),
        )
        with self._lock:
            self.planned.append(change)

    def finish(self) -> list[PlannedChange]:
        with self._lock:
            return list(self.planned)
