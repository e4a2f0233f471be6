"""
Terraform target.

This target does not call any cloud. It accumulates named resource blocks and
writes them as a Terraform JSON document when the run finishes.

Cross references
A dependent task never inlines another task's output. It references it by
literal, for example ${aws_key_pair.admin.id}, and Terraform resolves it.

Side files
Large opaque content such as public key material is written to data/ and
referenced with a file() literal, so the main document stays readable.

Output layout
<out_dir>/main.tf.json
<out_dir>/data/<resource type>_<resource name>_<key>
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from infra_reconciler.core.errors import ConfigurationError
from infra_reconciler.core.serialization import to_json_safe
from infra_reconciler.core.types import TargetKind
from infra_reconciler.targets.base import Target
from infra_reconciler.tasks.resources import ResourceHolder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Literal:
    """
    A Terraform expression emitted verbatim.

    to_json lets serialization render it without quoting tricks.
    """

    value: str

    def to_json(self) -> str:
        return self.value


def literal_property(resource_type: str, resource_name: str, prop: str) -> Literal:
    """Reference an attribute of another resource block."""
    return Literal(f"${{{resource_type}.{resource_name}.{prop}}}")


def terraform_name(name: str) -> str:
    """
    Convert a resource name into a valid Terraform block name.

    Colons are dropped, other characters outside [A-Za-z0-9_-] become dashes.
    """
    return re.sub(r"[^A-Za-z0-9_-]", "-", name.replace(":", ""))


@dataclass(frozen=True)
class TerraformConfig:
    """
    Terraform target configuration.

    out_dir
    Where finish writes the document. None keeps everything in memory.

    filename
    Name of the main document.
    """

    out_dir: Path | None = None
    filename: str = "main.tf.json"


@dataclass(frozen=True)
class TerraformOutput:
    """Document and side files produced by finish."""

    document: dict[str, Any]
    files: dict[str, bytes]


@dataclass
class TerraformTarget(Target):
    """Render tasks into a Terraform JSON document."""

    config: TerraformConfig = field(default_factory=TerraformConfig)
    kind: TargetKind = TargetKind.terraform
    discovers: ClassVar[bool] = False

    def __post_init__(self) -> None:
        self._resources: dict[str, dict[str, Any]] = {}
        self._files: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def render_resource(self, resource_type: str, resource_name: str, body: Any) -> None:
        """
        Add one resource block.

        body may be a dict or a dataclass, None values are dropped.
        Rendering the same block twice is a configuration error.
        """
        rendered = to_json_safe(body)
        if isinstance(rendered, dict):
            rendered = {k: v for k, v in rendered.items() if v is not None}

        with self._lock:
            blocks = self._resources.setdefault(resource_type, {})
            if resource_name in blocks:
                raise ConfigurationError(f"terraform resource rendered twice: {resource_type}.{resource_name}")
            blocks[resource_name] = rendered

    def add_file(
        self,
        resource_type: str,
        resource_name: str,
        key: str,
        resource: ResourceHolder | None,
    ) -> Literal | None:
        """
        Write resource content as a side file and return a file() literal.

        Returns None when there is no resource, so optional fields stay unset.
        """
        if resource is None:
            return None

        path = f"data/{resource_type}_{resource_name}_{key}"
        content = resource.as_bytes()
        with self._lock:
            self._files[path] = content
        return Literal(f'${{file("${{path.module}}/{path}")}}')

    def resources(self) -> dict[str, dict[str, Any]]:
        """Return a copy of the accumulated resource blocks."""
        with self._lock:
            return {t: dict(blocks) for t, blocks in self._resources.items()}

    def document(self) -> dict[str, Any]:
        with self._lock:
            resource = {t: dict(sorted(b.items())) for t, b in sorted(self._resources.items())}
        return {"resource": resource}

    def finish(self) -> TerraformOutput:
        """
        Produce the final document.

        When out_dir is configured the document and side files are written.
        """
        doc = self.document()
        with self._lock:
            files = dict(self._files)

        out_dir = self.config.out_dir
        if out_dir is not None:
            out_dir = Path(out_dir)
            out_dir.mkdir(parents=True, exist_ok=True)

            main_path = out_dir / self.config.filename
            main_path.write_text(json.dumps(doc, indent=2, sort_keys=True) + "\n", encoding="utf-8")

            for rel, content in sorted(files.items()):
                p = out_dir / rel
                p.parent.mkdir(parents=True, exist_ok=True)
                p.write_bytes(content)

            logger.info("wrote terraform document %s with %d side files", main_path, len(files))

        return TerraformOutput(document=doc, files=files)
