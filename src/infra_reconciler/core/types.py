"""
Core types.

This file defines the shared data structures used across the engine.

Important design choice
We keep these types provider neutral and back-end neutral.

Provider neutral means:
The cluster model describes zones, etcd members and instance groups, not
cloud specific resources.

Back-end neutral means:
A task renders to whichever TargetKind is active, callers do not care.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import List


class TaskState(StrEnum):
    """
    Lifecycle state of a task within one run.

    declared
      Constructed by the caller, not yet touched by the executor.

    found
      Actual state was queried from the target.

    diffed
      Expected and actual state were compared.
      A converged task stays here because nothing needs to be applied.

    applied
      The renderer for the active target completed.

    failed
      find, diff or apply raised an unrecoverable error.
    """

    declared = "declared"
    found = "found"
    diffed = "diffed"
    applied = "applied"
    failed = "failed"


class TargetKind(StrEnum):
    """
    Execution back-ends.

    api
      Direct calls against the cloud provider.

    terraform
      Accumulate resource blocks into a Terraform JSON document.

    dry_run
      Record what would change without touching anything.
    """

    api = "api"
    terraform = "terraform"
    dry_run = "dry_run"


class InstanceGroupRole(StrEnum):
    """Role of an instance group in a cluster."""

    master = "Master"
    node = "Node"
    bastion = "Bastion"


@dataclass
class ZoneSpec:
    """
    A zone the cluster is allowed to use.

    cidr is the subnet carved out for the zone.
    """

    name: str
    cidr: str = ""


@dataclass
class EtcdMemberSpec:
    """One etcd member, placed in a zone."""

    name: str
    zone: str


@dataclass
class EtcdClusterSpec:
    """
    An etcd cluster.

    members should be an odd count so the cluster keeps quorum when one
    master zone is lost.
    """

    name: str
    members: List[EtcdMemberSpec] = field(default_factory=list)


@dataclass
class ClusterSpec:
    """
    A cluster specification as consumed by validation.

    zones is the full zone set of the cluster.
    etcd_clusters is usually main plus events.
    """

    name: str
    zones: List[ZoneSpec] = field(default_factory=list)
    etcd_clusters: List[EtcdClusterSpec] = field(default_factory=list)

    def zone_names(self) -> List[str]:
        """Return zone names in declaration order."""
        return [z.name for z in self.zones]


@dataclass
class InstanceGroup:
    """
    A group of machines sharing a role.

    zones lists the zones the group spans.
    """

    name: str
    role: InstanceGroupRole
    zones: List[str] = field(default_factory=list)
    min_size: int = 1
    max_size: int = 1
