"""
Cloud API target.

Tasks rendering on this target call the cloud client directly.
The target itself holds no state beyond the client, the client owns transport,
credentials and any retry policy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from infra_reconciler.cloud.base import CloudClient
from infra_reconciler.core.types import TargetKind
from infra_reconciler.targets.base import Target


@dataclass
class CloudApiTarget(Target):
    """Apply changes with live cloud calls."""

    cloud: CloudClient
    kind: TargetKind = TargetKind.api
    discovers: ClassVar[bool] = True

    def finish(self) -> None:
        return None
