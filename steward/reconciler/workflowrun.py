"""Reconciles workflow runs."""

from __future__ import annotations

import logging
from typing import Optional

from .. import constants
from ..apis import ResourceKey, RunStatus, WorkflowRun, utcnow
from ..app.pipelinerun import apply_pipeline_run
from ..app.rundeps import WorkflowRunDeps, configure_workflow_run_deps
from ..app.runstatus import configure_workflow_run
from ..errors import RequiredError
from ..execution import ExecutionStatusFeed, PipelineRunStatusFeed
from ..lifecycle import finalize
from ..resources import WorkflowRunHandle
from ..store.base import ObjectStore

logger = logging.getLogger(__name__)


class WorkflowRunReconciler:
    """Prepares the environment of a run, requests its execution and keeps
    its status in line with what the execution engine reports."""

    kind = WorkflowRun.KIND

    def __init__(
        self,
        store: ObjectStore,
        feed: Optional[ExecutionStatusFeed] = None,
        *,
        image_pull_secret: Optional[ResourceKey] = None,
    ) -> None:
        self.store = store
        self.feed = feed or PipelineRunStatusFeed(store)
        self.image_pull_secret = image_pull_secret

    async def reconcile(self, key: ResourceKey) -> bool:
        run = WorkflowRunHandle(key)
        if not await run.load(self.store):
            logger.debug(f"Workflow run {key} is gone")
            return False

        deps = WorkflowRunDeps(run, image_pull_secret=self.image_pull_secret)

        async def cleanup() -> None:
            try:
                await deps.load(self.store)
            except RequiredError as e:
                logger.info(f"Nothing left to clean up for workflow run {key}: {e}")
            await deps.delete(self.store)

        if await finalize(self.store, constants.WORKFLOW_RUN_FINALIZER, run, cleanup):
            return False

        if self._finished(run):
            logger.debug(f"Workflow run {key} already ended as {run.object.status.status.value}")
            return False

        if not run.object.spec.workflow.steps:
            self._complete_empty(run)
            await run.persist_status(self.store)
            logger.info(f"Workflow run {key} has no steps: {run.object.status.status.value}")
            return False

        await deps.load(self.store)
        configure_workflow_run_deps(deps)
        await deps.persist(self.store)

        pr = await apply_pipeline_run(self.store, deps)

        snapshot = await self.feed.snapshot(run.object)
        configure_workflow_run(run.object, snapshot)
        if not pr.object.metadata.uid:
            # Cancelled before execution was requested: nothing will report an end.
            run.object.status.completion_time = run.object.status.completion_time or utcnow()
        await run.persist_status(self.store)

        logger.info(f"Reconciled workflow run {key}: {run.object.status.status.value}")
        return False

    @staticmethod
    def _finished(run: WorkflowRunHandle) -> bool:
        # A cancelled run keeps following execution until the engine reports its end.
        status = run.object.status
        return (
            status.status is not None
            and status.status.is_terminal
            and status.completion_time is not None
        )

    @staticmethod
    def _complete_empty(run: WorkflowRunHandle) -> None:
        status = run.object.status
        now = utcnow()
        status.observed_generation = run.object.metadata.generation
        status.status = RunStatus.CANCELLED if run.is_cancelled() else RunStatus.SUCCESS
        status.start_time = status.start_time or now
        status.completion_time = status.completion_time or now
