"""
Dependency extraction.

This module builds the dependency mapping over a task universe.

Strategies, explicit first
1) A task implementing get_dependencies declares its dependencies itself.
   The structural walk is skipped for it.
2) Otherwise we walk the task's dataclass fields.

Walk rules
- a nested Task is a dependency, we do not look inside it
- a nested object implementing get_dependencies contributes its own list
- resource holders, resources, literals and NotADependency metadata are skipped
- other dataclasses are walked field by field
- lists, tuples, sets and dict values are walked element by element
- None, strings, bytes, numbers, booleans, enums and paths are ignored
- anything else is a ConfigurationError

The last rule matters. A field type we cannot classify may hide a reference to
another task, and silently ignoring it could produce a wrong execution order.
"""

from __future__ import annotations

import logging
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import PurePath
from typing import Any, Mapping

from infra_reconciler.core.errors import ConfigurationError
from infra_reconciler.targets.terraform import Literal
from infra_reconciler.tasks.base import HasDependencies, NotADependency, Task
from infra_reconciler.tasks.resources import Resource, ResourceHolder

logger = logging.getLogger(__name__)

_LEAF_TYPES = (str, bytes, bytearray, bool, int, float, complex, Enum, PurePath)
_SKIPPED_TYPES = (ResourceHolder, Literal, NotADependency)


def find_task_dependencies(
    tasks: Mapping[str, Task],
    log: logging.Logger | None = None,
) -> dict[str, list[str]]:
    """
    Return a mapping from each task key to the keys it depends on.

    Order inside each list is discovery order. Duplicates may appear, the sort
    collapses them.
    """

    log = log or logger
    task_to_key: dict[int, str] = {id(t): k for k, t in tasks.items()}

    edges: dict[str, list[str]] = {}
    for key in sorted(tasks):
        task = tasks[key]

        if isinstance(task, HasDependencies):
            dependencies = list(task.get_dependencies(tasks))
        else:
            dependencies = structural_dependencies(tasks, task, key)

        dependency_keys: list[str] = []
        for dep in dependencies:
            dep_key = task_to_key.get(id(dep))
            if dep_key is None:
                raise ConfigurationError(
                    f"dependency not found for task {key}: {type(dep).__name__} {_describe(dep)}"
                )
            dependency_keys.append(dep_key)

        edges[key] = dependency_keys

    log.debug("dependencies:")
    for key, deps in edges.items():
        log.debug("\t%s:\t%s", key, deps)

    return edges


def structural_dependencies(tasks: Mapping[str, Task], task: Task, key: str = "") -> list[Task]:
    """
    Walk the fields of one task and collect referenced tasks.

    The task itself is never its own dependency.
    """
    if not is_dataclass(task):
        raise ConfigurationError(f"task {key or task!r} is not a dataclass, cannot walk its fields")

    found: list[Task] = []
    for f in fields(task):
        _walk(tasks, getattr(task, f.name), f.name, found)
    return [dep for dep in found if dep is not task]


def _walk(tasks: Mapping[str, Task], value: Any, path: str, found: list[Task]) -> None:
    if value is None or isinstance(value, _LEAF_TYPES):
        return

    if isinstance(value, Task):
        found.append(value)
        return

    if isinstance(value, HasDependencies):
        found.extend(value.get_dependencies(tasks))
        return

    if isinstance(value, _SKIPPED_TYPES) or isinstance(value, Resource):
        return

    if is_dataclass(value) and not isinstance(value, type):
        for f in fields(value):
            _walk(tasks, getattr(value, f.name), f"{path}.{f.name}", found)
        return

    if isinstance(value, Mapping):
        for k, v in value.items():
            _walk(tasks, v, f"{path}[{k!r}]", found)
        return

    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else value
        for idx, item in enumerate(items):
            _walk(tasks, item, f"{path}[{idx}]", found)
        return

    raise ConfigurationError(f"unhandled type for {path!r}: {type(value).__name__}")


def _describe(task: Any) -> str:
    if isinstance(task, Task):
        return task.task_name()
    return repr(task)
