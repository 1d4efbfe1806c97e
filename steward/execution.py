"""Read execution results back from the execution engine."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .apis import Condition, PipelineRun, StepStatusSummary, WorkflowRun
from .app.runstatus import ExecutionSnapshot, status_from_condition
from .errors import NotFoundError
from .store.base import ObjectStore

logger = logging.getLogger(__name__)


class ExecutionStatusFeed(Protocol):
    """Source of execution snapshots for workflow runs."""

    async def snapshot(self, run: WorkflowRun) -> Optional[ExecutionSnapshot]:
        """Return the latest snapshot, or None if execution has not started."""
        ...


def _summary(
    name: str,
    condition: Optional[Condition],
    start_time,
    completion_time,
    log_key: Optional[str] = None,
) -> StepStatusSummary:
    return StepStatusSummary(
        name=name,
        status=status_from_condition(condition),
        start_time=start_time,
        completion_time=completion_time,
        log_key=log_key,
    )


def snapshot_from_pipeline_run(pr: PipelineRun) -> ExecutionSnapshot:
    """Translate the status the execution engine wrote on ``pr``.

    Task runs are keyed by pipeline task name, which is the step hash. The
    name field of each summary is filled in later by the status engine.
    """
    status = pr.status
    snapshot = ExecutionSnapshot(
        condition=status.succeeded(),
        start_time=status.start_time,
        completion_time=status.completion_time,
    )

    for task_run in status.task_runs.values():
        hash_ = task_run.pipeline_task_name
        snapshot.steps[hash_] = _summary(
            hash_,
            task_run.condition,
            task_run.start_time,
            task_run.completion_time,
            log_key=task_run.pod_name or None,
        )
        for check in task_run.condition_checks.values():
            if check.condition is None:
                continue
            snapshot.conditions[hash_] = _summary(
                hash_, check.condition, check.start_time, check.completion_time
            )
            break
    return snapshot


class PipelineRunStatusFeed:
    """Feed backed by PipelineRun objects in the store."""

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    async def snapshot(self, run: WorkflowRun) -> Optional[ExecutionSnapshot]:
        try:
            pr = await self.store.get(PipelineRun, run.key)
        except NotFoundError:
            logger.debug(f"No execution recorded for {run}")
            return None
        return snapshot_from_pipeline_run(pr)
