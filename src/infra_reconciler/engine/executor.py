"""
Topological executor.

Drives every task of a run through its lifecycle in dependency order.

Before the first task runs
1) the dependency mapping is sorted, a cycle raises CycleError
2) every task must have a renderer for the active target, otherwise one
   ConfigurationError names all offending tasks

Execution
max_workers 1 is a single synchronous pass over the sorted order.
With more workers, a task is dispatched once every dependency completed
successfully. Tasks without a dependency relationship may run at the same time.
Only the dispatching thread touches the bookkeeping (remaining counts and the
ready set), workers only run tasks and report back.

Failure and cancellation
After the first failure, or once the cancel signal or deadline fires, no new
task is dispatched. Tasks already running finish. Nothing is rolled back,
re-running the engine converges from wherever the previous run stopped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from infra_reconciler.cloud.base import CloudClient
from infra_reconciler.core.errors import Cancelled, ConfigurationError
from infra_reconciler.core.types import TaskState
from infra_reconciler.graph.topological import dependents_of, topological_sort
from infra_reconciler.targets.base import Target, require_renderers
from infra_reconciler.tasks.base import Context, Task

_OK = "ok"
_FAILED = "failed"
_CANCELLED = "cancelled"


@dataclass
class TaskOutcome:
    """
    What happened to one task.

    state
    Final lifecycle state. declared means the task was never dispatched.

    changed
    True when a renderer ran for the task.

    error
    The exception that failed the task.
    """

    key: str
    state: TaskState = TaskState.declared
    changed: bool = False
    error: Exception | None = None


@dataclass
class RunResult:
    """
    Result of one run.

    order is the topological order that was used.
    output is whatever target.finish returned, set by the engine on success.
    """

    order: list[str]
    outcomes: dict[str, TaskOutcome]
    cancelled: bool = False
    output: Any = None

    @property
    def ok(self) -> bool:
        if self.cancelled:
            return False
        return all(o.state in (TaskState.diffed, TaskState.applied) for o in self.outcomes.values())

    def failures(self) -> list[TaskOutcome]:
        return [self.outcomes[k] for k in self.order if self.outcomes[k].state == TaskState.failed]

    def applied(self) -> list[str]:
        return [k for k in self.order if self.outcomes[k].changed]

    def not_run(self) -> list[str]:
        return [k for k in self.order if self.outcomes[k].state == TaskState.declared]

    def report(self) -> str:
        """Single aggregated report suitable for an operator."""
        total = len(self.order)
        lines: list[str] = []

        failures = self.failures()
        if failures:
            lines.append(f"{len(failures)} of {total} tasks failed")
            for o in failures:
                lines.append(f"task {o.key} failed: {o.error}")
        if self.cancelled:
            lines.append("run was cancelled")

        if not lines:
            return f"all {total} tasks converged, {len(self.applied())} applied"

        applied = self.applied()
        if applied:
            lines.append(f"applied before stopping: {', '.join(applied)}")
        skipped = self.not_run()
        if skipped:
            lines.append(f"not executed: {', '.join(skipped)}")
        return "\n".join(lines)


class TaskExecutor:
    """
    Executor for one target.

    target
    Active back-end. Exactly one per run.

    cloud
    Cloud client handed to tasks through the context.

    logger
    Explicit logger, passed down to tasks.

    max_workers
    1 runs sequentially, more fans out over a thread pool.
    """

    def __init__(
        self,
        target: Target,
        cloud: CloudClient | None = None,
        logger: logging.Logger | None = None,
        max_workers: int = 1,
    ) -> None:
        if max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        self._target = target
        self._cloud = cloud
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._max_workers = max_workers

    def execute(
        self,
        tasks: Mapping[str, Task],
        edges: Mapping[str, Sequence[str]],
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> RunResult:
        """
        Execute tasks in dependency order.

        Raises CycleError or ConfigurationError before any task runs.
        Task failures do not raise, they are recorded in the RunResult.
        """

        if set(edges) != set(tasks):
            raise ConfigurationError("dependency mapping and task set do not match")

        order = topological_sort(edges)

        require_renderers(tasks, self._target)

        ctx = Context(
            tasks=tasks,
            target=self._target,
            cloud=self._cloud,
            logger=self._logger,
            cancel=cancel or threading.Event(),
            deadline=deadline,
        )
        outcomes = {key: TaskOutcome(key=key) for key in order}

        self._logger.info(
            "executing %d tasks on target %s", len(order), self._target.kind, extra={"target": self._target.kind}
        )

        if self._max_workers == 1:
            cancelled = self._run_sequential(ctx, order, outcomes)
        else:
            cancelled = self._run_parallel(ctx, edges, outcomes)

        for key, outcome in outcomes.items():
            if outcome.state != TaskState.failed:
                outcome.state = ctx.state_of(key)

        return RunResult(order=order, outcomes=outcomes, cancelled=cancelled)

    def _run_one(self, ctx: Context, key: str, outcome: TaskOutcome) -> str:
        task = ctx.tasks[key]
        try:
            outcome.changed = task.run(ctx)
        except Cancelled as exc:
            self._logger.warning("task %s stopped: %s", key, exc, extra={"task_key": key})
            return _CANCELLED
        except Exception as exc:
            return self._fail(ctx, key, outcome, exc)
        return _OK

    def _fail(self, ctx: Context, key: str, outcome: TaskOutcome, exc: Exception) -> str:
        outcome.error = exc
        outcome.state = TaskState.failed
        ctx.set_state(ctx.tasks[key], TaskState.failed)
        self._logger.error("task %s failed: %s", key, exc, extra={"task_key": key, "state": TaskState.failed})
        return _FAILED

    def _run_sequential(self, ctx: Context, order: list[str], outcomes: dict[str, TaskOutcome]) -> bool:
        for key in order:
            if ctx.cancelled():
                return True
            status = self._run_one(ctx, key, outcomes[key])
            if status == _CANCELLED:
                return True
            if status == _FAILED:
                return False
        return False

    def _run_parallel(
        self,
        ctx: Context,
        edges: Mapping[str, Sequence[str]],
        outcomes: dict[str, TaskOutcome],
    ) -> bool:
        if ctx.cancelled():
            return True

        dependents = dependents_of(edges)
        remaining = {key: len(set(deps)) for key, deps in edges.items()}

        cancelled = False
        stop = False

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="reconcile") as pool:
            pending: dict[Future[str], str] = {}

            def dispatch(keys: list[str]) -> None:
                for key in sorted(keys):
                    pending[pool.submit(self._run_one, ctx, key, outcomes[key])] = key

            dispatch([key for key, n in remaining.items() if n == 0])

            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)

                released: list[str] = []
                for fut in done:
                    key = pending.pop(fut)
                    status = fut.result()
                    if status == _CANCELLED:
                        cancelled = True
                        stop = True
                        continue
                    if status == _FAILED:
                        stop = True
                        continue
                    for dependent in dependents[key]:
                        remaining[dependent] -= 1
                        if remaining[dependent] == 0:
                            released.append(dependent)

                if ctx.cancelled():
                    cancelled = True
                    stop = True

                if not stop:
                    dispatch(released)

        return cancelled
