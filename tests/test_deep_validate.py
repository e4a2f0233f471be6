import pytest

from infra_reconciler.core.errors import ValidationFailed
from infra_reconciler.core.types import (
    ClusterSpec,
    EtcdClusterSpec,
    EtcdMemberSpec,
    InstanceGroup,
    InstanceGroupRole,
    ZoneSpec,
)
from infra_reconciler.validation.deep_validate import ETCD_QUORUM_MESSAGE, deep_validate, require_valid


def make_cluster(zones: list[str], etcd_zones: list[str] | None = None) -> ClusterSpec:
    """
    Helper to build a cluster with one main etcd cluster.

    etcd_zones defaults to the first zone, one member per entry.
    """
    members = [EtcdMemberSpec(name=f"m{i}", zone=z) for i, z in enumerate(etcd_zones or zones[:1])]
    return ClusterSpec(
        name="demo.example.com",
        zones=[ZoneSpec(name=z) for z in zones],
        etcd_clusters=[EtcdClusterSpec(name="main", members=members)],
    )


def make_groups(master_zone: str = "us-east-1a", node_zones: list[str] | None = None) -> list[InstanceGroup]:
    return [
        InstanceGroup(name="master", role=InstanceGroupRole.master, zones=[master_zone]),
        InstanceGroup(name="nodes", role=InstanceGroupRole.node, zones=node_zones or ["us-east-1a"]),
    ]


def test_valid_cluster_has_no_errors():
    assert deep_validate(make_cluster(["us-east-1a", "us-east-1b"]), make_groups()) == []


def test_missing_node_group():
    groups = [InstanceGroup(name="master", role=InstanceGroupRole.master, zones=["us-east-1a"])]

    errors = deep_validate(make_cluster(["us-east-1a"]), groups)

    assert errors == ["must configure at least one Node InstanceGroup"]


def test_missing_master_group():
    groups = [InstanceGroup(name="nodes", role=InstanceGroupRole.node, zones=["us-east-1a"])]

    errors = deep_validate(make_cluster(["us-east-1a"]), groups)

    assert errors == ["must configure at least one Master InstanceGroup"]


def test_bastion_does_not_count_as_node():
    groups = [
        InstanceGroup(name="master", role=InstanceGroupRole.master, zones=["us-east-1a"]),
        InstanceGroup(name="bastions", role=InstanceGroupRole.bastion, zones=["us-east-1a"]),
    ]

    assert deep_validate(make_cluster(["us-east-1a"]), groups) == [
        "must configure at least one Node InstanceGroup"
    ]


def test_duplicate_zone():
    errors = deep_validate(make_cluster(["us-east-1a", "us-east-1a"]), make_groups())

    assert errors == ["Zones contained a duplicate value: us-east-1a"]


def test_even_etcd_members_break_quorum():
    cluster = make_cluster(["us-east-1a", "us-east-1b"], etcd_zones=["us-east-1a", "us-east-1b"])

    assert deep_validate(cluster, make_groups()) == [ETCD_QUORUM_MESSAGE]
    assert ETCD_QUORUM_MESSAGE.startswith("There should be an odd number of master-zones, for etcd's quorum.")


def test_etcd_cluster_without_members():
    cluster = ClusterSpec(
        name="demo",
        zones=[ZoneSpec(name="us-east-1a")],
        etcd_clusters=[EtcdClusterSpec(name="events")],
    )

    assert deep_validate(cluster, make_groups()) == ['EtcdCluster "events" has no members']


def test_group_in_unknown_zone_strict_only():
    cluster = make_cluster(["us-east-1a"])
    groups = make_groups(node_zones=["us-east-1c"])

    strict = deep_validate(cluster, groups, strict=True)
    lenient = deep_validate(cluster, groups, strict=False)

    assert strict == [
        'InstanceGroup "nodes" is configured in "us-east-1c", but this is not configured as a Zone in the cluster'
    ]
    assert lenient == []


def test_etcd_member_in_unknown_zone_strict_only():
    cluster = make_cluster(["us-east-1a"], etcd_zones=["us-east-1d"])

    assert len(deep_validate(cluster, make_groups(), strict=True)) == 1
    assert deep_validate(cluster, make_groups(), strict=False) == []


def test_all_violations_are_collected():
    cluster = make_cluster(["us-east-1a", "us-east-1a"], etcd_zones=["us-east-1a", "us-east-1a"])

    errors = deep_validate(cluster, [])

    assert "Zones contained a duplicate value: us-east-1a" in errors
    assert "must configure at least one Master InstanceGroup" in errors
    assert "must configure at least one Node InstanceGroup" in errors
    assert ETCD_QUORUM_MESSAGE in errors


def test_missing_names():
    cluster = ClusterSpec(name="demo", zones=[ZoneSpec(name="")])
    groups = [
        InstanceGroup(name="", role=InstanceGroupRole.master),
        InstanceGroup(name="nodes", role=InstanceGroupRole.node),
    ]

    errors = deep_validate(cluster, groups)

    assert errors == ["Zone name is required", "InstanceGroup name is required"]


def test_require_valid_raises_with_every_error():
    with pytest.raises(ValidationFailed) as exc:
        require_valid(make_cluster(["us-east-1a"]), [])

    assert exc.value.errors == [
        "must configure at least one Master InstanceGroup",
        "must configure at least one Node InstanceGroup",
    ]
    assert str(exc.value).startswith("cluster validation failed: ")
