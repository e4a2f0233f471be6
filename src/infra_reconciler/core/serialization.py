from __future__ import annotations

from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from infra_reconciler.tasks.resources import ResourceHolder

RESOURCE_PLACEHOLDER = "<resource>"


def to_json_safe(obj: Any) -> Any:
    """
    Convert a value into something json.dumps accepts.

    Objects exposing to_json, such as terraform literals, render themselves.
    Enums collapse to their value.
    Dataclasses become dicts of their non None fields.
    Resource holders become a placeholder, their content is never read here.

    Raises TypeError for any other type.
    """
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (str, bool, int, float)):
        return obj
    if hasattr(obj, "to_json"):
        return obj.to_json()
    if isinstance(obj, ResourceHolder):
        return RESOURCE_PLACEHOLDER
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8")
    if is_dataclass(obj) and not isinstance(obj, type):
        out: dict[str, Any] = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if value is not None:
                out[f.name] = to_json_safe(value)
        return out
    if isinstance(obj, dict):
        return {str(k): to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_json_safe(v) for v in obj]
    raise TypeError(f"cannot convert {type(obj).__name__} to json")


def changes_to_json(changes: dict[str, Any]) -> dict[str, Any]:
    """
    Changes transport shape.

    Nested tasks are reduced to their name so a report never inlines
    another task's full state.
    """
    out: dict[str, Any] = {}
    for name, value in sorted(changes.items()):
        if hasattr(value, "task_name"):
            out[name] = value.task_name()
        else:
            out[name] = to_json_safe(value)
    return out
