"""
Resources.

A resource is opaque content a task needs, such as public key material or
user data. It is produced on demand and never treated as a dependency.

ResourceHolder wraps a resource and materializes it exactly once. Every later
read returns the cached bytes, so content generated locally stays stable for
the whole run.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, runtime_checkable


@runtime_checkable
class Resource(Protocol):
    """
    Deferred content interface.

    open returns the full content as bytes.
    """

    def open(self) -> bytes:
        """Produce the content."""


@dataclass(frozen=True)
class StringResource(Resource):
    """Content held as a string."""

    value: str

    def open(self) -> bytes:
        return self.value.encode("utf-8")


@dataclass(frozen=True)
class BytesResource(Resource):
    """Content held as bytes."""

    value: bytes

    def open(self) -> bytes:
        return self.value


@dataclass(frozen=True)
class FileResource(Resource):
    """Content read from a local file."""

    path: Path

    def open(self) -> bytes:
        return Path(self.path).read_bytes()


@dataclass(frozen=True)
class GeneratedResource(Resource):
    """
    Content produced by a callable.

    Useful for locally generated key material.
    """

    generate: Callable[[], bytes]

    def open(self) -> bytes:
        return self.generate()


class ResourceHolder:
    """
    Lazily materialized resource.

    The first call to as_bytes or as_string opens the wrapped resource,
    later calls return the cache. Safe to share across worker threads.
    """

    def __init__(self, resource: Resource) -> None:
        self._resource = resource
        self._lock = threading.Lock()
        self._content: bytes | None = None

    @classmethod
    def from_string(cls, value: str) -> "ResourceHolder":
        return cls(StringResource(value))

    @classmethod
    def from_file(cls, path: Path | str) -> "ResourceHolder":
        return cls(FileResource(Path(path)))

    @property
    def resource(self) -> Resource:
        return self._resource

    @property
    def materialized(self) -> bool:
        """True once the content was read."""
        return self._content is not None

    def as_bytes(self) -> bytes:
        with self._lock:
            if self._content is None:
                self._content = self._resource.open()
            return self._content

    def as_string(self) -> str:
        return self.as_bytes().decode("utf-8")

    def __repr__(self) -> str:
        state = "materialized" if self.materialized else "pending"
        return f"ResourceHolder({type(self._resource).__name__}, {state})"
