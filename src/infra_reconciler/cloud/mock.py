"""
In memory cloud.

This client is used for tests and local simulations.
It behaves like a tiny provider database of key pairs and instances.

Features
- Records every call so tests can assert that a converged run issues no mutation
- Computes key fingerprints the way the provider does on import
- Can inject failures per operation name
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from infra_reconciler.cloud.base import CloudClient, CloudError, CloudNotFound
from infra_reconciler.tasks.fingerprint import compute_aws_key_fingerprint

MUTATING_CALLS = frozenset({"import_key_pair", "run_instance", "create_tags"})


@dataclass
class InMemoryCloud(CloudClient):
    """
    In memory cloud.

    failures
    Optional mapping of operation name to exception.
    When set, the named operation raises it instead of running.

    key_pairs and instances
    Internal state, keyed by name and instance id.
    """

    failures: dict[str, Exception] = field(default_factory=dict)
    key_pairs: dict[str, dict[str, Any]] = field(default_factory=dict)
    instances: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _record(self, op: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((op, args))
        if op in self.failures:
            raise self.failures[op]

    def mutations(self) -> list[tuple[str, tuple[Any, ...]]]:
        """Return recorded calls that change state."""
        with self._lock:
            return [c for c in self.calls if c[0] in MUTATING_CALLS]

    def describe_key_pairs(self, names: list[str]) -> list[dict[str, Any]]:
        self._record("describe_key_pairs", tuple(names))

        out: list[dict[str, Any]] = []
        with self._lock:
            for name in names:
                kp = self.key_pairs.get(name)
                if kp is None:
                    raise CloudNotFound(f"key pair {name} does not exist", code="InvalidKeyPair.NotFound")
                out.append(dict(kp))
        return out

    def import_key_pair(self, name: str, public_key_material: bytes) -> dict[str, Any]:
        self._record("import_key_pair", name)

        fingerprint = compute_aws_key_fingerprint(public_key_material.decode("utf-8"))
        with self._lock:
            if name in self.key_pairs:
                raise CloudError(f"key pair {name} already exists", code="InvalidKeyPair.Duplicate")
            kp = {"KeyName": name, "KeyFingerprint": fingerprint}
            self.key_pairs[name] = kp
            return dict(kp)

    def describe_instances(self, name: str) -> list[dict[str, Any]]:
        self._record("describe_instances", name)

        with self._lock:
            found = [dict(i, Tags=dict(i["Tags"])) for i in self.instances.values() if i["Name"] == name]
        if not found:
            raise CloudNotFound(f"no instance named {name}", code="InvalidInstanceID.NotFound")
        return sorted(found, key=lambda i: i["InstanceId"])

    def run_instance(
        self,
        name: str,
        image_id: str,
        instance_type: str,
        key_name: str | None,
        user_data: bytes | None,
        tags: dict[str, str],
    ) -> dict[str, Any]:
        self._record("run_instance", name, image_id, instance_type, key_name)

        with self._lock:
            if key_name is not None and key_name not in self.key_pairs:
                raise CloudError(f"key pair {key_name} does not exist", code="InvalidKeyPair.NotFound")

            instance_id = f"i-{len(self.instances) + 1:08x}"
            inst = {
                "InstanceId": instance_id,
                "Name": name,
                "ImageId": image_id,
                "InstanceType": instance_type,
                "KeyName": key_name,
                "UserData": user_data,
                "Tags": dict(tags),
            }
            self.instances[instance_id] = inst
            return dict(inst, Tags=dict(inst["Tags"]))

    def create_tags(self, resource_id: str, tags: dict[str, str]) -> None:
        self._record("create_tags", resource_id, tuple(sorted(tags.items())))

        with self._lock:
            inst = self.instances.get(resource_id)
            if inst is None:
                raise CloudNotFound(f"resource {resource_id} does not exist")
            inst["Tags"].update(tags)
