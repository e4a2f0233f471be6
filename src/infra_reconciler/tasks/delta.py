"""
Generic diff and apply driver.

Every task runs through default_delta_run:
1) find the actual state, skipped on targets that do not discover
2) build the field level delta between actual and expected
3) stop when the delta is empty, a converged resource is never rendered again
4) check_changes, then the renderer of the active target

Delta rules
Only dataclass fields declared with compare=True take part.
A field changes when the expected value is set and differs from the actual one.
When the resource does not exist every set expected field is a change.

Comparison rules
Nested tasks compare by type and natural identity, not by their full state.
Resource holders compare by identity first and only read content when they
are different objects.
"""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from typing import Any, Optional

from infra_reconciler.core.errors import ApplyError, ConfigurationError, DiscoveryError, ReconcilerError
from infra_reconciler.core.types import TaskState
from infra_reconciler.targets.base import renderer_for
from infra_reconciler.tasks.base import Context, Task
from infra_reconciler.tasks.resources import ResourceHolder


def values_equal(actual: Any, expected: Any) -> bool:
    """Compare one field value using the rules in the module docstring."""
    if actual is expected:
        return True
    if actual is None or expected is None:
        return False

    if isinstance(expected, Task):
        if type(actual) is not type(expected):
            return False
        return actual.task_name() == expected.task_name()

    if isinstance(expected, ResourceHolder):
        if not isinstance(actual, ResourceHolder):
            return False
        return actual.as_bytes() == expected.as_bytes()

    if isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)) or len(actual) != len(expected):
            return False
        return all(values_equal(a, e) for a, e in zip(actual, expected))

    if isinstance(expected, dict):
        if not isinstance(actual, dict) or actual.keys() != expected.keys():
            return False
        return all(values_equal(actual[k], expected[k]) for k in expected)

    return actual == expected


def build_changes(actual: Optional[Task], expected: Task) -> dict[str, Any]:
    """
    Return field name to expected value for every field that must change.

    An empty dict means the task has converged.
    """
    if not is_dataclass(expected):
        raise ConfigurationError(f"task {expected.task_name()} is not a dataclass, cannot diff its fields")

    changes: dict[str, Any] = {}
    for f in fields(expected):
        if not f.compare:
            continue

        want = getattr(expected, f.name)
        if want is None:
            continue

        if actual is None:
            changes[f.name] = want
            continue

        have = getattr(actual, f.name, None)
        if not values_equal(have, want):
            changes[f.name] = want

    return changes


def default_delta_run(task: Task, ctx: Context) -> bool:
    """
    Drive one task through find, diff and apply.

    Returns True when a renderer ran.

    Errors
    Unexpected find failures become DiscoveryError.
    Unexpected render failures become ApplyError.
    ReconcilerError subclasses, such as CannotChangeField, pass through as is.
    """

    key = ctx.key_for(task)
    log = ctx.logger
    extra = {"task_key": key, "target": ctx.target.kind}

    ctx.check_cancelled()

    actual: Optional[Task] = None
    if ctx.target.discovers:
        try:
            actual = task.find(ctx)
        except ReconcilerError:
            raise
        except Exception as exc:
            raise DiscoveryError(key, exc) from exc

    if actual is not None and type(actual) is not type(task):
        raise ConfigurationError(
            f"find for task {key} returned {type(actual).__name__}, expected {type(task).__name__}"
        )
    ctx.set_state(task, TaskState.found)

    changes = build_changes(actual, task)
    ctx.set_state(task, TaskState.diffed)

    if not changes:
        log.info("task %s is up to date", key, extra=extra)
        return False

    task.check_changes(actual, task, changes)

    renderer = renderer_for(task, ctx.target, key)

    ctx.check_cancelled()

    action = "creating" if actual is None else "updating"
    log.info("%s task %s, changed fields: %s", action, key, ", ".join(sorted(changes)), extra=extra)

    try:
        renderer(ctx.target, actual, task, changes)
    except ReconcilerError:
        raise
    except Exception as exc:
        raise ApplyError(key, exc) from exc

    ctx.set_state(task, TaskState.applied)
    return True
