from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import pytest

from infra_reconciler.cloud.base import CloudError
from infra_reconciler.cloud.mock import InMemoryCloud
from infra_reconciler.core.errors import ConfigurationError, CycleError, RunFailed, ValidationFailed
from infra_reconciler.core.types import (
    ClusterSpec,
    InstanceGroup,
    InstanceGroupRole,
    TargetKind,
    TaskState,
    ZoneSpec,
)
from infra_reconciler.engine.engine import EngineConfig, ReconcileEngine
from infra_reconciler.engine.executor import TaskExecutor
from infra_reconciler.targets.api import CloudApiTarget
from infra_reconciler.targets.terraform import TerraformTarget
from infra_reconciler.tasks.base import Context, Renderer, Task
from infra_reconciler.tasks.instance import Instance
from infra_reconciler.tasks.resources import ResourceHolder
from infra_reconciler.tasks.sshkey import SSHKey

KEY_ADMIN = (
    "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAAAgQC43YW5JQD7zaA9KleLermtNaqBtKjmRt5T8Z3ENNMj6kv2oqiEi4089da5gzch"
    "TSC48oWBfgDlz9D/pUs5Sz/wqK0Ib83OAWpntZjKsbFtjyEz15MTb14Kd5aprlKVKXgn4BlKSJ/upgHuzhYVEDWNwT24MmFSfzfG"
    "ul9Aj8WYdw== test@example"
)


class Journal:
    """Thread safe record of task applications."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started: list[str] = []
        self.finished: list[str] = []

    def start(self, name: str) -> None:
        with self._lock:
            self.started.append(name)

    def finish(self, name: str) -> None:
        with self._lock:
            self.finished.append(name)


@dataclass(eq=False)
class Step(Task):
    """
    Test task with explicit dependencies.

    It never exists, so every run applies it. fail makes the render raise,
    cancels is set from inside the render.
    """

    name: str
    journal: Journal = field(compare=False, repr=False, default_factory=Journal)
    after: list["Step"] = field(default_factory=list, compare=False, repr=False)
    delay: float = field(default=0.0, compare=False)
    fail: bool = field(default=False, compare=False)
    cancels: Optional[threading.Event] = field(default=None, compare=False, repr=False)

    def get_dependencies(self, tasks: Mapping[str, Task]) -> list[Task]:
        return list(self.after)

    def find(self, ctx: Context) -> Optional["Step"]:
        return None

    def renderers(self) -> Mapping[TargetKind, Renderer]:
        return {TargetKind.api: self.render_api}

    def render_api(self, target: Any, actual: Any, expected: "Step", changes: dict[str, Any]) -> None:
        self.journal.start(self.name)
        if self.delay:
            time.sleep(self.delay)
        if self.cancels is not None:
            self.cancels.set()
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        self.journal.finish(self.name)


def make_cluster() -> tuple[ClusterSpec, list[InstanceGroup]]:
    cluster = ClusterSpec(name="demo", zones=[ZoneSpec(name="us-east-1a")])
    groups = [
        InstanceGroup(name="master-us-east-1a", role=InstanceGroupRole.master, zones=["us-east-1a"]),
        InstanceGroup(name="nodes", role=InstanceGroupRole.node, zones=["us-east-1a"]),
    ]
    return cluster, groups


def make_api_engine(cloud: InMemoryCloud | None = None, **config: Any) -> ReconcileEngine:
    target = CloudApiTarget(cloud=cloud or InMemoryCloud())
    return ReconcileEngine(target, config=EngineConfig(**config), logger=logging.getLogger("test"))


def make_steps(journal: Journal) -> dict[str, Task]:
    """
    Diamond plus an independent leaf.

    base <- left, right <- top ; solo
    """
    base = Step(name="base", journal=journal)
    left = Step(name="left", journal=journal, after=[base])
    right = Step(name="right", journal=journal, after=[base])
    top = Step(name="top", journal=journal, after=[left, right])
    solo = Step(name="solo", journal=journal)
    return {"base": base, "left": left, "right": right, "top": top, "solo": solo}


def test_end_to_end_api_run_then_second_run_is_noop():
    cloud = InMemoryCloud()
    cluster, groups = make_cluster()

    def make_tasks() -> dict[str, Task]:
        key = SSHKey(name="admin", public_key=ResourceHolder.from_string(KEY_ADMIN))
        inst = Instance(name="web", image_id="ami-1", instance_type="t3.small", ssh_key=key)
        return {"sshkey/admin": key, "instance/web": inst}

    first = make_api_engine(cloud).run(make_tasks(), cluster=cluster, groups=groups)

    assert first.ok
    assert first.order == ["sshkey/admin", "instance/web"]
    assert first.applied() == ["sshkey/admin", "instance/web"]
    assert [c[0] for c in cloud.mutations()] == ["import_key_pair", "run_instance"]

    second = make_api_engine(cloud).run(make_tasks(), cluster=cluster, groups=groups)

    assert second.applied() == []
    assert all(o.state == TaskState.diffed for o in second.outcomes.values())
    assert len(cloud.mutations()) == 2
    assert second.report() == "all 2 tasks converged, 0 applied"


def test_sequential_run_respects_dependencies():
    journal = Journal()

    result = make_api_engine().run(make_steps(journal))

    assert result.order == ["base", "solo", "left", "right", "top"]
    assert journal.finished == result.order


def test_parallel_run_respects_dependencies():
    journal = Journal()
    tasks = make_steps(journal)
    for t in tasks.values():
        t.delay = 0.01  # type: ignore[attr-defined]

    result = make_api_engine(max_workers=4).run(tasks)

    assert result.ok
    pos = {name: i for i, name in enumerate(journal.finished)}
    assert sorted(pos) == ["base", "left", "right", "solo", "top"]
    assert pos["base"] < pos["left"] < pos["top"]
    assert pos["base"] < pos["right"] < pos["top"]


def test_cycle_aborts_before_any_application():
    journal = Journal()
    a = Step(name="a", journal=journal)
    b = Step(name="b", journal=journal, after=[a])
    a.after.append(b)

    with pytest.raises(CycleError) as exc:
        make_api_engine().run({"a": a, "b": b})

    assert exc.value.keys == ["a", "b"]
    assert journal.started == []


def test_missing_renderer_is_detected_before_execution():
    journal = Journal()
    tasks = make_steps(journal)

    with pytest.raises(ConfigurationError) as exc:
        ReconcileEngine(TerraformTarget()).run(tasks)

    assert "base, left, right, solo, top" in str(exc.value)
    assert journal.started == []


def test_failure_stops_dispatch_and_keeps_earlier_work():
    journal = Journal()
    base = Step(name="base", journal=journal)
    mid = Step(name="mid", journal=journal, after=[base], fail=True)
    top = Step(name="top", journal=journal, after=[mid])

    with pytest.raises(RunFailed) as exc:
        make_api_engine().run({"base": base, "mid": mid, "top": top})

    result = exc.value.result
    assert journal.finished == ["base"]
    assert result.applied() == ["base"]
    assert result.not_run() == ["top"]
    assert result.outcomes["mid"].state == TaskState.failed

    report = str(exc.value)
    assert "1 of 3 tasks failed" in report
    assert "task mid failed: apply failed for task mid: mid exploded" in report
    assert "applied before stopping: base" in report
    assert "not executed: top" in report


def test_cloud_failure_is_reported_per_task():
    cloud = InMemoryCloud(failures={"run_instance": CloudError("capacity", code="InsufficientInstanceCapacity")})
    key = SSHKey(name="admin", public_key=ResourceHolder.from_string(KEY_ADMIN))
    inst = Instance(name="web", image_id="ami-1", instance_type="t3.small", ssh_key=key)

    with pytest.raises(RunFailed) as exc:
        make_api_engine(cloud).run({"sshkey/admin": key, "instance/web": inst})

    failures = exc.value.result.failures()
    assert [f.key for f in failures] == ["instance/web"]
    assert "admin" in cloud.key_pairs


def test_preset_cancel_runs_nothing():
    journal = Journal()
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RunFailed) as exc:
        make_api_engine().run(make_steps(journal), cancel=cancel)

    assert exc.value.result.cancelled
    assert journal.started == []
    assert "run was cancelled" in str(exc.value)


def test_preset_cancel_runs_nothing_in_parallel():
    journal = Journal()
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RunFailed):
        make_api_engine(max_workers=3).run(make_steps(journal), cancel=cancel)

    assert journal.started == []


def test_expired_deadline_runs_nothing():
    journal = Journal()
    executor = TaskExecutor(target=CloudApiTarget(cloud=InMemoryCloud()))
    tasks = make_steps(journal)
    edges = {k: [d.name for d in t.after] for k, t in tasks.items()}  # type: ignore[attr-defined]

    result = executor.execute(tasks, edges, deadline=time.monotonic() - 1)

    assert result.cancelled
    assert not result.ok
    assert journal.started == []


def test_validation_blocks_the_run():
    journal = Journal()
    cluster = ClusterSpec(name="demo", zones=[ZoneSpec(name="us-east-1a")])
    groups = [InstanceGroup(name="master", role=InstanceGroupRole.master, zones=["us-east-1a"])]

    with pytest.raises(ValidationFailed) as exc:
        make_api_engine().run(make_steps(journal), cluster=cluster, groups=groups)

    assert exc.value.errors == ["must configure at least one Node InstanceGroup"]
    assert journal.started == []


def test_skip_validation_bypasses_checks():
    journal = Journal()
    cluster = ClusterSpec(name="demo")

    result = make_api_engine(skip_validation=True).run(make_steps(journal), cluster=cluster, groups=[])

    assert result.ok


def test_plan_returns_order_without_running():
    journal = Journal()

    order = make_api_engine().plan(make_steps(journal))

    assert order == ["base", "solo", "left", "right", "top"]
    assert journal.started == []


def test_invalid_worker_count():
    with pytest.raises(ConfigurationError):
        TaskExecutor(target=CloudApiTarget(cloud=InMemoryCloud()), max_workers=0)


def test_parallel_failure_blocks_dependents_while_running_work_finishes():
    """
    a fails fast, b depends on a, z is slow and independent.

    b must never start. z was already running and must complete.
    """
    journal = Journal()
    a = Step(name="a", journal=journal, fail=True)
    b = Step(name="b", journal=journal, after=[a])
    z = Step(name="z", journal=journal, delay=0.2)

    with pytest.raises(RunFailed) as exc:
        make_api_engine(max_workers=3).run({"a": a, "b": b, "z": z})

    result = exc.value.result
    assert "b" not in journal.started
    assert journal.finished == ["z"]
    assert result.outcomes["a"].state == TaskState.failed
    assert result.outcomes["z"].state == TaskState.applied
    assert result.not_run() == ["b"]


def test_parallel_cancel_mid_run_lets_running_tasks_finish():
    """
    a sets the cancel signal while it renders, z is already rendering next to it.

    Both finish, b depends on a and is never dispatched.
    """
    journal = Journal()
    cancel = threading.Event()
    a = Step(name="a", journal=journal, cancels=cancel, delay=0.05)
    b = Step(name="b", journal=journal, after=[a])
    z = Step(name="z", journal=journal, delay=0.3)

    with pytest.raises(RunFailed) as exc:
        make_api_engine(max_workers=2).run({"a": a, "b": b, "z": z}, cancel=cancel)

    result = exc.value.result
    assert result.cancelled
    assert sorted(journal.finished) == ["a", "z"]
    assert "b" not in journal.started
    assert result.outcomes["a"].state == TaskState.applied
    assert result.not_run() == ["b"]


def test_plan_rejects_tasks_without_renderer():
    journal = Journal()

    with pytest.raises(ConfigurationError) as exc:
        ReconcileEngine(TerraformTarget()).plan(make_steps(journal))

    assert "tasks have no renderer for target terraform" in str(exc.value)
