"""
Topological ordering.

Input is the mapping built by graph.dependencies:
  task key -> list of keys it depends on

Algorithm
Kahn's algorithm in rounds. A node is ready when all of its distinct
dependencies are already ordered. Each round takes every ready node, in
lexicographic order, and releases its dependents.

Determinism
Identical input always yields identical output, regardless of dict order.
This keeps logs and tests reproducible.

Cycles
When nodes remain but none is ready the graph has a cycle. We raise
CycleError naming every unresolved key. Nothing has been executed at that
point because sorting happens before the first task runs.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from infra_reconciler.core.errors import ConfigurationError, CycleError


def _normalize(edges: Mapping[str, Sequence[str]]) -> dict[str, set[str]]:
    deps: dict[str, set[str]] = {}
    for key, dep_keys in edges.items():
        unknown = sorted(set(dep_keys) - set(edges))
        if unknown:
            raise ConfigurationError(f"task {key} depends on unknown tasks: {', '.join(unknown)}")
        deps[key] = set(dep_keys)
    return deps


def dependents_of(edges: Mapping[str, Sequence[str]]) -> dict[str, list[str]]:
    """Invert the mapping: key -> sorted keys that depend on it."""
    out: dict[str, set[str]] = {k: set() for k in edges}
    for key, dep_keys in edges.items():
        for dep in dep_keys:
            out.setdefault(dep, set()).add(key)
    return {k: sorted(v) for k, v in out.items()}


def topological_waves(edges: Mapping[str, Sequence[str]]) -> list[list[str]]:
    """
    Return the ordering as rounds.

    Every key in a round depends only on keys in earlier rounds, so the keys
    of one round are independent of each other.
    """

    deps = _normalize(edges)
    dependents = dependents_of(edges)
    remaining = {k: len(v) for k, v in deps.items()}

    waves: list[list[str]] = []
    ready = sorted(k for k, n in remaining.items() if n == 0)

    while ready:
        waves.append(ready)
        released: list[str] = []
        for key in ready:
            del remaining[key]
            for dependent in dependents[key]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    released.append(dependent)
        ready = sorted(released)

    if remaining:
        raise CycleError(remaining.keys())

    return waves


def topological_sort(edges: Mapping[str, Sequence[str]]) -> list[str]:
    """
    Return keys so that every dependency comes strictly before its dependents.

    Example
    {"a": ["b"], "b": ["c"], "c": []} gives ["c", "b", "a"].
    """
    return [key for wave in topological_waves(edges) for key in wave]
