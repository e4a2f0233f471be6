"""
Cloud client interface.

Goal
Keep tasks independent of a specific SDK. Real implementations wrap a provider
library, tests use cloud.mock.InMemoryCloud.

Contract
Every call returns a result, raises CloudNotFound, or raises CloudError.
A describe call never answers a missing resource with an empty success.

Retries and backoff belong to the implementation, the engine never retries.
"""

from __future__ import annotations

from typing import Any, Protocol


class CloudError(Exception):
    """
    A cloud call failed.

    code carries the provider error code when there is one.
    """

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.code = code


class CloudNotFound(CloudError):
    """The requested resource does not exist."""


class CloudClient(Protocol):
    """
    Minimal cloud shaped client interface.

    Key pairs are returned as dicts with KeyName and KeyFingerprint.
    Instances are returned as dicts with InstanceId, Name, ImageId,
    InstanceType, KeyName and Tags.
    """

    def describe_key_pairs(self, names: list[str]) -> list[dict[str, Any]]:
        """Return the named key pairs, CloudNotFound when any is missing."""

    def import_key_pair(self, name: str, public_key_material: bytes) -> dict[str, Any]:
        """Import a public key and return the created key pair."""

    def describe_instances(self, name: str) -> list[dict[str, Any]]:
        """Return instances tagged with the name, CloudNotFound when none."""

    def run_instance(
        self,
        name: str,
        image_id: str,
        instance_type: str,
        key_name: str | None,
        user_data: bytes | None,
        tags: dict[str, str],
    ) -> dict[str, Any]:
        """Launch one instance and return it."""

    def create_tags(self, resource_id: str, tags: dict[str, str]) -> None:
        """Add or replace tags on a resource."""
