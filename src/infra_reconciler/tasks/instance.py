"""
Instance task.

A single named machine. It references its SSH key task directly, which is how
the dependency walk learns that the key must exist before the instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from infra_reconciler.cloud.base import CloudNotFound
from infra_reconciler.core.errors import CannotChangeField, ConfigurationError, DiscoveryError
from infra_reconciler.core.types import TargetKind
from infra_reconciler.targets.api import CloudApiTarget
from infra_reconciler.targets.terraform import Literal, TerraformTarget, literal_property, terraform_name
from infra_reconciler.tasks.base import Context, Renderer, Task
from infra_reconciler.tasks.resources import ResourceHolder
from infra_reconciler.tasks.sshkey import SSHKey

IMMUTABLE_FIELDS = ("image_id", "instance_type", "ssh_key", "user_data")


@dataclass(eq=False)
class Instance(Task):
    """
    Machine instance.

    image_id, instance_type, ssh_key and user_data cannot change after launch.
    tags are updated in place.

    instance_id is filled by find or by the api renderer and never compared.
    """

    name: str
    image_id: Optional[str] = None
    instance_type: Optional[str] = None
    ssh_key: Optional[SSHKey] = None
    tags: dict[str, str] = field(default_factory=dict)
    user_data: Optional[ResourceHolder] = None
    instance_id: Optional[str] = field(default=None, compare=False)

    def compare_with_id(self) -> str | None:
        return self.name

    def find(self, ctx: Context) -> Optional["Instance"]:
        cloud = ctx.require_cloud()

        try:
            found = cloud.describe_instances(self.name)
        except CloudNotFound:
            return None

        if len(found) != 1:
            raise DiscoveryError(ctx.key_for(self), f"found {len(found)} instances with name {self.name}")

        raw = found[0]
        if not raw.get("InstanceId"):
            raise DiscoveryError(ctx.key_for(self), f"instance {self.name} was returned without an instance id")

        actual = Instance(
            name=str(raw["Name"]),
            image_id=raw.get("ImageId"),
            instance_type=raw.get("InstanceType"),
            tags=dict(raw.get("Tags") or {}),
            instance_id=raw.get("InstanceId"),
        )

        key_name = raw.get("KeyName")
        if key_name is not None:
            if self.ssh_key is not None and self.ssh_key.name == key_name:
                actual.ssh_key = self.ssh_key
            else:
                actual.ssh_key = SSHKey(name=key_name)

        # User data cannot be read back, it is immutable and set at launch.
        actual.user_data = self.user_data
        self.instance_id = actual.instance_id
        return actual

    def check_changes(self, actual: Optional[Task], expected: Task, changes: dict[str, Any]) -> None:
        if actual is None:
            return
        for name in IMMUTABLE_FIELDS:
            if name in changes:
                raise CannotChangeField(name)

    def renderers(self) -> Mapping[TargetKind, Renderer]:
        return {
            TargetKind.api: self.render_api,
            TargetKind.terraform: self.render_terraform,
        }

    def render_api(
        self,
        target: CloudApiTarget,
        actual: Optional["Instance"],
        expected: "Instance",
        changes: dict[str, Any],
    ) -> None:
        if actual is None:
            user_data = expected.user_data.as_bytes() if expected.user_data is not None else None
            key_name = expected.ssh_key.name if expected.ssh_key is not None else None
            response = target.cloud.run_instance(
                name=expected.name,
                image_id=expected.image_id or "",
                instance_type=expected.instance_type or "",
                key_name=key_name,
                user_data=user_data,
                tags=dict(expected.tags),
            )
            expected.instance_id = response.get("InstanceId")
            return

        if "tags" in changes:
            if not actual.instance_id:
                raise ConfigurationError(f"cannot tag instance {expected.name}: actual state has no instance id")
            target.cloud.create_tags(actual.instance_id, dict(expected.tags))
            expected.instance_id = actual.instance_id

    def render_terraform(
        self,
        target: TerraformTarget,
        actual: Optional["Instance"],
        expected: "Instance",
        changes: dict[str, Any],
    ) -> None:
        tf_name = terraform_name(expected.name)
        body: dict[str, Any] = {
            "ami": expected.image_id,
            "instance_type": expected.instance_type,
            "user_data": target.add_file("aws_instance", tf_name, "user_data", expected.user_data),
            "tags": dict(expected.tags, Name=expected.name),
        }
        if expected.ssh_key is not None:
            body["key_name"] = expected.ssh_key.terraform_link()
        target.render_resource("aws_instance", tf_name, body)

    def terraform_link(self) -> Literal:
        return literal_property("aws_instance", terraform_name(self.name), "id")
