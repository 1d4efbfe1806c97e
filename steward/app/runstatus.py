"""Fold per-step execution results into the status of a workflow run."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from .. import constants
from ..apis import (
    Condition,
    ConditionStatus,
    RunStatus,
    StepStatusSummary,
    WorkflowRun,
    WorkflowRunStatus,
    step_hash,
)
from ..graph import DirectedGraph

logger = logging.getLogger(__name__)

# Once the run ends in one of these, nothing pending will ever start.
RUN_ENDED_STATUSES = frozenset(
    {RunStatus.CANCELLED, RunStatus.FAILURE, RunStatus.TIMED_OUT}
)

# A pending step downstream of one of these can never run.
BLOCKING_STATUSES = frozenset({RunStatus.SKIPPED, RunStatus.FAILURE})


class ExecutionSnapshot(BaseModel):
    """What the execution engine reported for one run at one point in time.

    Step and condition-check summaries are keyed by step hash.
    """

    condition: Optional[Condition] = None
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    steps: Dict[str, StepStatusSummary] = Field(default_factory=dict)
    conditions: Dict[str, StepStatusSummary] = Field(default_factory=dict)

    def step_status(self, hash_: str) -> Optional[StepStatusSummary]:
        return self.steps.get(hash_)

    def condition_status(self, hash_: str) -> Optional[StepStatusSummary]:
        return self.conditions.get(hash_)


def status_from_condition(condition: Optional[Condition]) -> RunStatus:
    """Map an execution engine Succeeded condition to a RunStatus."""
    if condition is None:
        return RunStatus.PENDING
    if condition.status == ConditionStatus.UNKNOWN:
        return RunStatus.IN_PROGRESS
    if condition.status == ConditionStatus.TRUE:
        return RunStatus.SUCCESS
    if condition.reason == constants.REASON_CONDITION_CHECK_FAILED:
        return RunStatus.SKIPPED
    if condition.reason in constants.TIMEOUT_REASONS:
        return RunStatus.TIMED_OUT
    return RunStatus.FAILURE


def _lookup(
    found: Optional[StepStatusSummary], name: str
) -> StepStatusSummary:
    if found is None:
        return StepStatusSummary(name=name)
    return found.model_copy(update={"name": name}, deep=True)


def compute_run_status(
    run: WorkflowRun, snapshot: Optional[ExecutionSnapshot]
) -> WorkflowRunStatus:
    """Return the new status of ``run`` given the latest execution snapshot.

    The result is derived only from the arguments, so the same inputs always
    yield the same status. Existing step and condition entries are merged
    rather than replaced, and previously recorded log keys are kept.
    """
    status = run.status.model_copy(deep=True)
    status.observed_generation = run.metadata.generation

    if run.is_cancelled():
        overall = RunStatus.CANCELLED
    else:
        overall = status_from_condition(snapshot.condition if snapshot else None)
    status.status = overall

    if snapshot is not None:
        if snapshot.start_time is not None:
            status.start_time = snapshot.start_time
        if snapshot.completion_time is not None:
            status.completion_time = snapshot.completion_time

    steps = run.spec.workflow.steps
    for step in steps:
        hash_ = step_hash(run.metadata.name, step.name)

        summary = _lookup(snapshot.step_status(hash_) if snapshot else None, step.name)
        previous = status.steps.get(step.name)
        if previous is not None and previous.log_key:
            summary.log_key = previous.log_key
        if overall in RUN_ENDED_STATUSES and summary.status == RunStatus.PENDING:
            summary.status = RunStatus.SKIPPED
        status.steps[step.name] = summary

        if step.when is not None:
            status.conditions[step.name] = _lookup(
                snapshot.condition_status(hash_) if snapshot else None, step.name
            )

    graph = DirectedGraph.from_dependencies((step.name, step.depends_on) for step in steps)
    for name in graph.topological_order():
        summary = status.steps[name]
        if summary.status != RunStatus.PENDING:
            continue
        for dep in graph.dependencies(name):
            if status.steps[dep].status in BLOCKING_STATUSES:
                logger.debug(f"Skipping step {name} of {run}: dependency {dep} did not succeed")
                summary.status = RunStatus.SKIPPED
                break

    return status


def configure_workflow_run(
    run: WorkflowRun, snapshot: Optional[ExecutionSnapshot]
) -> None:
    """Write the computed status onto ``run`` in place."""
    run.status = compute_run_status(run, snapshot)
