"""
Static cluster source.

Reads a local json file.

Schema example
{
  "cluster": {
    "name": "demo",
    "zones": [{"name": "us-east-1a", "cidr": "172.20.32.0/19"}],
    "etcd_clusters": [
      {"name": "main", "members": [{"name": "a", "zone": "us-east-1a"}]}
    ]
  },
  "instance_groups": [
    {"name": "master-us-east-1a", "role": "Master", "zones": ["us-east-1a"]},
    {"name": "nodes", "role": "Node", "zones": ["us-east-1a"], "min_size": 2, "max_size": 2}
  ]
}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from infra_reconciler.core.errors import ConfigurationError
from infra_reconciler.core.types import (
    ClusterSpec,
    EtcdClusterSpec,
    EtcdMemberSpec,
    InstanceGroup,
    InstanceGroupRole,
    ZoneSpec,
)
from infra_reconciler.cluster.base import ClusterDocument, ClusterSource


def _cluster_from_dict(obj: dict[str, Any]) -> ClusterSpec:
    zones = [
        ZoneSpec(name=str(z.get("name", "")), cidr=str(z.get("cidr", "")))
        for z in obj.get("zones", []) or []
        if isinstance(z, dict)
    ]

    etcd_clusters = []
    for e in obj.get("etcd_clusters", []) or []:
        if not isinstance(e, dict):
            continue
        members = [
            EtcdMemberSpec(name=str(m.get("name", "")), zone=str(m.get("zone", "")))
            for m in e.get("members", []) or []
            if isinstance(m, dict)
        ]
        etcd_clusters.append(EtcdClusterSpec(name=str(e.get("name", "")), members=members))

    return ClusterSpec(name=str(obj.get("name", "")), zones=zones, etcd_clusters=etcd_clusters)


def _group_from_dict(obj: dict[str, Any]) -> InstanceGroup:
    raw_role = str(obj.get("role", ""))
    try:
        role = InstanceGroupRole(raw_role)
    except ValueError as exc:
        raise ConfigurationError(f"unknown instance group role: {raw_role!r}") from exc

    return InstanceGroup(
        name=str(obj.get("name", "")),
        role=role,
        zones=[str(z) for z in obj.get("zones", []) or []],
        min_size=int(obj.get("min_size", 1)),
        max_size=int(obj.get("max_size", 1)),
    )


@dataclass(frozen=True)
class StaticClusterSource(ClusterSource):
    """Load a cluster specification from a local json file."""

    path: Path

    def load(self) -> ClusterDocument:
        data = json.loads(self.path.read_text(encoding="utf-8"))

        if not isinstance(data, dict) or not isinstance(data.get("cluster"), dict):
            raise ConfigurationError(f"{self.path}: expected an object with a 'cluster' key")

        groups = [_group_from_dict(g) for g in data.get("instance_groups", []) or [] if isinstance(g, dict)]
        return ClusterDocument(cluster=_cluster_from_dict(data["cluster"]), groups=groups)
