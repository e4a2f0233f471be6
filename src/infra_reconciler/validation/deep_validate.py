"""
Cluster specification validation.

Purpose
Catch structural mistakes in a cluster specification before any task graph is
built. Every violation is collected so the operator sees all of them at once.

Checks
1) zone names are present and unique
2) at least one Master and at least one Node instance group exist
3) every etcd cluster has an odd member count, so quorum survives one loss
4) strict only: every zone used by an instance group or etcd member is one of
   the cluster zones

strict is False when the zone set is not fully enumerated yet, for example
while a cluster is being created from partial flags. Zone membership checks
are then skipped.
"""

from __future__ import annotations

from typing import Sequence

from infra_reconciler.core.errors import ValidationFailed
from infra_reconciler.core.types import ClusterSpec, InstanceGroup, InstanceGroupRole

ETCD_QUORUM_MESSAGE = (
    "There should be an odd number of master-zones, for etcd's quorum.  "
    "Hint: Use --zones and --master-zones to declare node zones and master zones separately."
)


def _validate_zones(cluster: ClusterSpec) -> list[str]:
    errors: list[str] = []
    seen: set[str] = set()
    for zone in cluster.zones:
        if not zone.name:
            errors.append("Zone name is required")
            continue
        if zone.name in seen:
            errors.append(f"Zones contained a duplicate value: {zone.name}")
        seen.add(zone.name)
    return errors


def _validate_groups(cluster: ClusterSpec, groups: Sequence[InstanceGroup], strict: bool) -> list[str]:
    errors: list[str] = []
    cluster_zones = set(cluster.zone_names())

    master_count = 0
    node_count = 0
    for group in groups:
        if not group.name:
            errors.append("InstanceGroup name is required")

        if group.role == InstanceGroupRole.master:
            master_count += 1
        elif group.role == InstanceGroupRole.node:
            node_count += 1

        if strict:
            for zone in group.zones:
                if zone not in cluster_zones:
                    errors.append(
                        f'InstanceGroup "{group.name}" is configured in "{zone}", '
                        "but this is not configured as a Zone in the cluster"
                    )

    if master_count == 0:
        errors.append("must configure at least one Master InstanceGroup")
    if node_count == 0:
        errors.append("must configure at least one Node InstanceGroup")

    return errors


def _validate_etcd(cluster: ClusterSpec, strict: bool) -> list[str]:
    errors: list[str] = []
    cluster_zones = set(cluster.zone_names())

    for etcd in cluster.etcd_clusters:
        if not etcd.members:
            errors.append(f'EtcdCluster "{etcd.name}" has no members')
            continue

        if len(etcd.members) % 2 == 0:
            errors.append(ETCD_QUORUM_MESSAGE)

        if strict:
            for member in etcd.members:
                if member.zone not in cluster_zones:
                    errors.append(
                        f'EtcdMember "{etcd.name}/{member.name}" is configured in "{member.zone}", '
                        "but this is not configured as a Zone in the cluster"
                    )

    return errors


def deep_validate(cluster: ClusterSpec, groups: Sequence[InstanceGroup], strict: bool = True) -> list[str]:
    """
    Validate a cluster and its instance groups.

    Returns human readable violations, empty when the cluster is valid.
    """
    errors: list[str] = []
    errors.extend(_validate_zones(cluster))
    errors.extend(_validate_groups(cluster, groups, strict))
    errors.extend(_validate_etcd(cluster, strict))
    return errors


def require_valid(cluster: ClusterSpec, groups: Sequence[InstanceGroup], strict: bool = True) -> None:
    """Raise ValidationFailed listing every violation."""
    errors = deep_validate(cluster, groups, strict)
    if errors:
        raise ValidationFailed(errors)
