"""
Graph package.

This makes the graph folder an explicit package so both Python and mypy
resolve modules consistently.
"""

from infra_reconciler.graph.dependencies import find_task_dependencies
from infra_reconciler.graph.topological import topological_sort, topological_waves

__all__ = ["find_task_dependencies", "topological_sort", "topological_waves"]
