"""The execution request handed to the execution engine for a workflow run."""

from __future__ import annotations

import logging
from typing import List

from .. import constants
from ..apis import PipelineTask, WorkflowRun, step_hash
from ..lifecycle import ownership
from ..resources import PipelineRunHandle
from ..store.base import ObjectStore
from .rundeps import WorkflowRunDeps, merged_parameters

logger = logging.getLogger(__name__)


def pipeline_tasks(run: WorkflowRun) -> List[PipelineTask]:
    """One task per step, named by step hash.

    Dependencies on steps the workflow does not declare are dropped.
    """
    name = run.metadata.name
    steps = run.spec.workflow.steps
    known = {step.name for step in steps}

    tasks = []
    for step in steps:
        hash_ = step_hash(name, step.name)
        tasks.append(
            PipelineTask(
                name=hash_,
                step_name=step.name,
                image=step.image,
                input=list(step.input),
                env=dict(step.env),
                run_after=[step_hash(name, dep) for dep in step.depends_on if dep in known],
                conditions=[hash_] if step.when is not None else [],
            )
        )
    return tasks


def configure_pipeline_run(pr: PipelineRunHandle, deps: WorkflowRunDeps) -> None:
    run = deps.run.object
    spec = pr.object.spec
    spec.service_account_name = deps.pipeline_service_account.name
    spec.params = merged_parameters(run)
    spec.tasks = pipeline_tasks(run)

    pr.label_annotate_from(run)
    ownership.label(pr.object, constants.WORKFLOW_RUN_LABEL, run.metadata.name)
    deps.run.own(pr)


async def apply_pipeline_run(store: ObjectStore, deps: WorkflowRunDeps) -> PipelineRunHandle:
    """Make sure the execution request for ``deps.run`` exists.

    The request is written once; later calls only propagate cancellation. A
    run cancelled before its request was written never gets one.
    """
    pr = PipelineRunHandle(deps.run.key)
    if not await pr.load(store):
        if deps.run.is_cancelled():
            return pr
        configure_pipeline_run(pr, deps)
        if await pr.ensure(store):
            logger.info(f"Requested execution of {deps.run.object}")

    if deps.run.is_cancelled() and pr.object.spec.status != constants.PIPELINE_RUN_CANCELLED:
        pr.object.spec.status = constants.PIPELINE_RUN_CANCELLED
        await pr.persist(store)
        logger.info(f"Cancelled execution of {deps.run.object}")
    return pr
