"""
Reconcile engine.

This engine coordinates one run:
validation, dependency extraction, ordered execution on the active target,
and completion of the target.

Recovery model
There is no rollback and no retry. When a run fails, tasks applied before the
failure keep their new state and RunFailed reports what happened. Running the
engine again re-discovers actual state and converges the rest.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Mapping, Sequence

from infra_reconciler.cloud.base import CloudClient
from infra_reconciler.core.errors import RunFailed
from infra_reconciler.core.types import ClusterSpec, InstanceGroup
from infra_reconciler.engine.executor import RunResult, TaskExecutor
from infra_reconciler.graph.dependencies import find_task_dependencies
from infra_reconciler.graph.topological import topological_sort
from infra_reconciler.targets.base import Target, require_renderers
from infra_reconciler.tasks.base import Task
from infra_reconciler.validation.deep_validate import require_valid


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine configuration.

    max_workers
    1 runs tasks sequentially. More runs independent subgraphs concurrently.

    strict_validation
    When False, zone membership checks are skipped.

    skip_validation
    Bypass cluster validation entirely.

    timeout_seconds
    Optional run deadline. Once passed no new task is dispatched.
    """

    max_workers: int = 1
    strict_validation: bool = True
    skip_validation: bool = False
    timeout_seconds: float | None = None


class ReconcileEngine:
    """
    Reconcile engine.

    target
    Active back-end for the run.

    cloud
    Cloud client for discovery. Defaults to the target's client when it has one.

    logger
    Explicit logger handed to the executor and every task.
    """

    def __init__(
        self,
        target: Target,
        cloud: CloudClient | None = None,
        config: EngineConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._target = target
        self._cloud = cloud if cloud is not None else getattr(target, "cloud", None)
        self._config = config or EngineConfig()
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    def plan(self, tasks: Mapping[str, Task]) -> list[str]:
        """
        Return the execution order without running anything.

        Raises ConfigurationError or CycleError exactly as run would, including
        for tasks that have no renderer for the active target.
        """
        edges = find_task_dependencies(tasks, self._logger)
        order = topological_sort(edges)

        require_renderers(tasks, self._target)
        return order

    def run(
        self,
        tasks: Mapping[str, Task],
        cluster: ClusterSpec | None = None,
        groups: Sequence[InstanceGroup] | None = None,
        cancel: threading.Event | None = None,
    ) -> RunResult:
        """
        Reconcile the task set.

        Steps
        1) validate the cluster specification when one is given
        2) extract dependencies
        3) execute in topological order
        4) finish the target

        Raises
        ValidationFailed, ConfigurationError and CycleError before any task runs.
        RunFailed when a task failed or the run was cancelled.
        """

        if cluster is not None and not self._config.skip_validation:
            require_valid(cluster, list(groups or []), strict=self._config.strict_validation)

        edges = find_task_dependencies(tasks, self._logger)

        deadline = None
        if self._config.timeout_seconds is not None:
            deadline = time.monotonic() + self._config.timeout_seconds

        executor = TaskExecutor(
            target=self._target,
            cloud=self._cloud,
            logger=self._logger,
            max_workers=self._config.max_workers,
        )
        result = executor.execute(tasks, edges, cancel=cancel, deadline=deadline)

        if not result.ok:
            self._logger.error("run failed:\n%s", result.report())
            raise RunFailed(result)

        result.output = self._target.finish()
        self._logger.info(result.report())
        return result
