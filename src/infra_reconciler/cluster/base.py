"""
Cluster source interfaces.

Goal
Provide pluggable loading of the cluster specification that validation
consumes before a run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from infra_reconciler.core.types import ClusterSpec, InstanceGroup


@dataclass(frozen=True)
class ClusterDocument:
    """
    A loaded cluster specification.

    cluster is the cluster wide part.
    groups are the instance groups, in document order.
    """

    cluster: ClusterSpec
    groups: list[InstanceGroup] = field(default_factory=list)


class ClusterSource(Protocol):
    """
    Cluster source interface.

    load returns the cluster and its instance groups.
    """

    def load(self) -> ClusterDocument:
        """Load the cluster specification."""
