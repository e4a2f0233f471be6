"""
SSH key pair task.

Manages a named key pair at the provider.

Fingerprint handling
The provider never returns the public key body, only its fingerprint.
When the caller does not pin key_fingerprint we derive it from the expected
public key before find runs. If the discovered fingerprint matches, the
public key is assumed unchanged and the key body is neither re-read nor
compared.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from infra_reconciler.cloud.base import CloudNotFound
from infra_reconciler.core.errors import CannotChangeField, DiscoveryError
from infra_reconciler.core.types import TargetKind
from infra_reconciler.targets.api import CloudApiTarget
from infra_reconciler.targets.terraform import Literal, TerraformTarget, literal_property, terraform_name
from infra_reconciler.tasks.base import Context, Renderer, Task
from infra_reconciler.tasks.fingerprint import compute_aws_key_fingerprint
from infra_reconciler.tasks.resources import ResourceHolder


@dataclass(eq=False)
class SSHKey(Task):
    """
    SSH key pair.

    name
    Key pair name at the provider, immutable once created.

    public_key
    Public key in authorized_keys format.

    key_fingerprint
    Provider fingerprint. Computed from public_key when not set.
    """

    name: str
    public_key: Optional[ResourceHolder] = None
    key_fingerprint: Optional[str] = None

    def compare_with_id(self) -> str | None:
        return self.name

    def set_defaults(self, ctx: Context) -> None:
        if self.key_fingerprint is None and self.public_key is not None:
            self.key_fingerprint = compute_aws_key_fingerprint(self.public_key.as_string())
            ctx.logger.debug("computed SSH key fingerprint as %s", self.key_fingerprint)

    def find(self, ctx: Context) -> Optional["SSHKey"]:
        cloud = ctx.require_cloud()

        try:
            response = cloud.describe_key_pairs([self.name])
        except CloudNotFound:
            return None

        if not response:
            return None
        if len(response) != 1:
            raise DiscoveryError(ctx.key_for(self), f"found multiple SSH keys with name {self.name}")

        kp = response[0]
        actual = SSHKey(name=str(kp["KeyName"]), key_fingerprint=kp.get("KeyFingerprint"))

        if actual.key_fingerprint == self.key_fingerprint:
            ctx.logger.debug("SSH key fingerprints match, assuming public keys match")
            actual.public_key = self.public_key
        else:
            ctx.logger.info(
                "SSH key fingerprint mismatch: expected %s found %s",
                self.key_fingerprint,
                actual.key_fingerprint,
            )

        return actual

    def check_changes(self, actual: Optional[Task], expected: Task, changes: dict[str, Any]) -> None:
        if actual is not None and "name" in changes:
            raise CannotChangeField("name")

    def renderers(self) -> Mapping[TargetKind, Renderer]:
        return {
            TargetKind.api: self.render_api,
            TargetKind.terraform: self.render_terraform,
        }

    def render_api(
        self,
        target: CloudApiTarget,
        actual: Optional["SSHKey"],
        expected: "SSHKey",
        changes: dict[str, Any],
    ) -> None:
        if actual is not None:
            # Key pairs carry no tags and everything else is immutable.
            return

        material = expected.public_key.as_bytes() if expected.public_key is not None else b""
        response = target.cloud.import_key_pair(expected.name, material)
        expected.key_fingerprint = response.get("KeyFingerprint")

    def render_terraform(
        self,
        target: TerraformTarget,
        actual: Optional["SSHKey"],
        expected: "SSHKey",
        changes: dict[str, Any],
    ) -> None:
        tf_name = terraform_name(expected.name)
        public_key = target.add_file("aws_key_pair", tf_name, "public_key", expected.public_key)
        target.render_resource(
            "aws_key_pair",
            tf_name,
            {"key_name": expected.name, "public_key": public_key},
        )

    def terraform_link(self) -> Literal:
        return literal_property("aws_key_pair", terraform_name(self.name), "id")
