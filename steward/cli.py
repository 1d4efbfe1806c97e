"""Command line interface for running steward controllers and inspecting runs."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from steward import constants
from steward.apis import KINDS, ResourceKey, Tenant, WebhookTrigger, WorkflowRun
from steward.config import load_config
from steward.controller import build_manager
from steward.errors import AlreadyExistsError, NotFoundError
from steward.resources import WorkflowRunHandle
from steward.store import EnqueueingStore, ObjectStore, get_store
from steward.transports import get_transport
from steward.utils.retry import RetryTimeoutError, mutate

app = typer.Typer(help="CLI for steward controllers")

# Command groups
controller_app = typer.Typer(help="Commands for running the controllers")
run_app = typer.Typer(help="Commands for inspecting and cancelling workflow runs")

app.add_typer(controller_app, name="controller")
app.add_typer(run_app, name="run")


@app.callback()
def main() -> None:
    """Steward CLI entry point."""
    pass


def _store() -> ObjectStore:
    """Store whose writes notify running controllers."""
    return EnqueueingStore(
        get_store(),
        get_transport(),
        [Tenant.KIND, WebhookTrigger.KIND, WorkflowRun.KIND],
    )


@controller_app.command("run")
def controller_run(
    lifespan: Optional[float] = None,
    resync: bool = typer.Option(
        True, help="Enqueue every stored object when the controllers start"
    ),
) -> None:
    """
    Run the tenant, webhook trigger and workflow run controllers.

    The controllers consume reconcile requests from the configured transport
    and write to the configured store.

    Example:
        steward controller run
        steward controller run --lifespan 300 --no-resync
    """
    manager = build_manager()
    typer.echo("Starting controllers: " + ", ".join(c.kind for c in manager.controllers))
    asyncio.run(manager.start(lifespan=lifespan, resync=resync))


@app.command("apply")
def apply(path: Path) -> None:
    """
    Create or update the objects described in a YAML file.

    The file may hold several documents; each needs a ``kind`` known to steward.

    Example:
        steward apply tenant.yaml
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    with open(path) as f:
        documents = [doc for doc in yaml.safe_load_all(f) if doc]

    objects = []
    for doc in documents:
        cls = KINDS.get(doc.get("kind", ""))
        if cls is None:
            typer.secho(f"Unknown kind: {doc.get('kind')!r}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        body = {k: v for k, v in doc.items() if k not in ("kind", "api_version")}
        try:
            objects.append(cls.model_validate(body))
        except ValidationError as e:
            typer.secho(f"Invalid {cls.KIND}: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    asyncio.run(_apply(_store(), objects))


async def _apply(store: ObjectStore, objects: list) -> None:
    for obj in objects:
        try:
            await store.create(obj)
            typer.echo(f"{obj} created")
        except AlreadyExistsError:
            current = await store.get(type(obj), obj.key)
            obj.metadata.uid = current.metadata.uid
            obj.metadata.resource_version = current.metadata.resource_version
            obj.metadata.finalizers = current.metadata.finalizers
            obj.metadata.owner_references = current.metadata.owner_references
            await store.update(obj)
            typer.echo(f"{obj} configured")


@run_app.command("list")
def run_list(namespace: Optional[str] = None) -> None:
    """
    List workflow runs with their current status.

    Example:
        steward run list
        steward run list --namespace team-a
        # Output: team-a/nightly-1    success
    """
    runs = asyncio.run(get_store().list(WorkflowRun, namespace))
    if not runs:
        typer.echo("No workflow runs found")
        return
    for run in runs:
        status = run.status.status.value if run.status.status else "-"
        typer.echo(f"{run.key}\t{status}")


@run_app.command("show")
def run_show(namespace: str, name: str) -> None:
    """
    Show the status of one workflow run and each of its steps.

    Example:
        steward run show team-a nightly-1
        # Output: WorkflowRun team-a/nightly-1: in-progress
        #         - build: success (2024-01-01 10:00 -> 10:01)
        #         - deploy: in-progress
    """
    try:
        run = asyncio.run(get_store().get(WorkflowRun, ResourceKey(namespace, name)))
    except NotFoundError:
        typer.echo("Workflow run not found")
        raise typer.Exit(code=1)

    status = run.status.status.value if run.status.status else "-"
    typer.echo(f"{run}: {status}")
    for step in run.spec.workflow.steps:
        summary = run.status.steps.get(step.name)
        if summary is None:
            typer.echo(f"- {step.name}: -")
            continue
        typer.echo(
            f"- {step.name}: {summary.status.value}"
            + (
                f" ({summary.start_time} -> {summary.completion_time})"
                if summary.start_time or summary.completion_time
                else ""
            )
        )
        condition = run.status.conditions.get(step.name)
        if condition is not None:
            typer.echo(f"  when: {condition.status.value}")


@run_app.command("cancel")
def run_cancel(namespace: str, name: str) -> None:
    """
    Request cancellation of a workflow run.

    Example:
        steward run cancel team-a nightly-1
    """
    config = load_config()

    def request_cancel(run: WorkflowRun) -> None:
        run.spec.state.workflow[constants.CANCEL_STATE_KEY] = True

    handle = WorkflowRunHandle(ResourceKey(namespace, name))
    try:
        asyncio.run(
            mutate(
                _store(),
                handle,
                request_cancel,
                timeout=config.controller.mutate_timeout,
            )
        )
    except NotFoundError:
        typer.echo("Workflow run not found")
        raise typer.Exit(code=1)
    except RetryTimeoutError as e:
        typer.secho(f"Could not cancel workflow run: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Cancellation requested for {handle.object}")
