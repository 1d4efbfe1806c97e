from datetime import datetime, timezone

import pytest

from steward import constants
from steward.apis import (
    Condition,
    ConditionStatus,
    ConfigMap,
    LimitRange,
    Namespace,
    NetworkPolicy,
    ObjectMeta,
    PipelineRun,
    ResourceKey,
    RunStatus,
    Secret,
    ServiceAccount,
    Step,
    TaskRunStatus,
    Workflow,
    WorkflowRun,
    WorkflowRunSpec,
    WorkflowState,
    step_hash,
)
from steward.errors import NotFoundError, RequiredError
from steward.reconciler import WorkflowRunReconciler
from steward.resources import ConfigMapHandle, WorkflowRunHandle
from steward.store import InMemoryObjectStore
from steward.utils.retry import mutate

RUN_KEY = ResourceKey("team-a", "nightly")
T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 1, 10, 5, tzinfo=timezone.utc)


async def _setup(store: InMemoryObjectStore, *steps: Step, cancelled: bool = False) -> None:
    await store.create(Namespace(metadata=ObjectMeta(name="team-a")))
    state = WorkflowState()
    if cancelled:
        state.workflow[constants.CANCEL_STATE_KEY] = True
    await store.create(
        WorkflowRun(
            metadata=ObjectMeta(name=RUN_KEY.name, namespace=RUN_KEY.namespace),
            spec=WorkflowRunSpec(
                workflow=Workflow(
                    name="nightly",
                    parameters={"region": "eu", "retries": 1},
                    steps=list(steps),
                ),
                parameters={"retries": 3},
                state=state,
            ),
        )
    )


def _two_steps():
    return (
        Step(name="build", image="alpine:3", input=["make"], spec={"target": "all"}),
        Step(name="deploy", depends_on=["build"], when={"eq": ["$region", "eu"]}),
    )


async def _report(store, condition, task_runs=None, completion_time=None):
    pr = await store.get(PipelineRun, RUN_KEY)
    pr.status.conditions = [condition]
    pr.status.start_time = T0
    pr.status.completion_time = completion_time
    pr.status.task_runs = task_runs or {}
    await store.update_status(pr)


def _succeeded(status: ConditionStatus, reason: str = "") -> Condition:
    return Condition(type=constants.SUCCEEDED_CONDITION, status=status, reason=reason)


@pytest.mark.asyncio
async def test_run_gets_environment_and_execution_request():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())

    await WorkflowRunReconciler(store).reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    assert constants.WORKFLOW_RUN_FINALIZER in run.metadata.finalizers
    assert run.status.status == RunStatus.PENDING
    assert run.status.steps["build"].status == RunStatus.PENDING

    immutable = await store.get(ConfigMap, ResourceKey("team-a", "nightly-immutable"))
    build, deploy = step_hash("nightly", "build"), step_hash("nightly", "deploy")
    assert ConfigMapHandle(immutable.key, immutable).get_json("parameters") == {
        "region": "eu",
        "retries": 3,
    }
    assert immutable.data[f"steps.{build}.spec"] == '{"target": "all"}'
    assert f"steps.{deploy}.condition" in immutable.data
    assert f"steps.{build}.condition" not in immutable.data
    assert immutable.metadata.labels[constants.WORKFLOW_RUN_LABEL] == "nightly"
    assert immutable.metadata.owner_references[0].uid == run.metadata.uid

    await store.get(ConfigMap, ResourceKey("team-a", "nightly-mutable"))
    await store.get(LimitRange, RUN_KEY)
    np = await store.get(NetworkPolicy, RUN_KEY)
    assert np.spec.pod_selector == {constants.WORKFLOW_RUN_LABEL: "nightly"}
    system = await store.get(ServiceAccount, ResourceKey("team-a", "nightly-system"))
    assert system.image_pull_secrets == []

    pr = await store.get(PipelineRun, RUN_KEY)
    assert pr.spec.service_account_name == "nightly-pipeline"
    assert pr.spec.params == {"region": "eu", "retries": 3}
    tasks = {task.step_name: task for task in pr.spec.tasks}
    assert tasks["build"].name == build
    assert tasks["build"].input == ["make"]
    assert tasks["deploy"].run_after == [build]
    assert tasks["deploy"].conditions == [deploy]
    assert pr.metadata.owner_references[0].uid == run.metadata.uid


@pytest.mark.asyncio
async def test_run_status_follows_execution_until_terminal():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    reconciler = WorkflowRunReconciler(store)
    await reconciler.reconcile(RUN_KEY)

    build, deploy = step_hash("nightly", "build"), step_hash("nightly", "deploy")
    await _report(
        store,
        _succeeded(ConditionStatus.UNKNOWN, "Running"),
        {
            "build-pod": TaskRunStatus(
                pipeline_task_name=build,
                pod_name="nightly-build-pod",
                condition=_succeeded(ConditionStatus.TRUE),
                start_time=T0,
                completion_time=T1,
            )
        },
    )
    await reconciler.reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.IN_PROGRESS
    assert run.status.start_time == T0
    assert run.status.steps["build"].status == RunStatus.SUCCESS
    assert run.status.steps["build"].log_key == "nightly-build-pod"
    assert run.status.steps["deploy"].status == RunStatus.PENDING

    await _report(
        store,
        _succeeded(ConditionStatus.TRUE),
        {
            "build-pod": TaskRunStatus(
                pipeline_task_name=build, condition=_succeeded(ConditionStatus.TRUE)
            ),
            "deploy-pod": TaskRunStatus(
                pipeline_task_name=deploy, condition=_succeeded(ConditionStatus.TRUE)
            ),
        },
        completion_time=T1,
    )
    await reconciler.reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.SUCCESS
    assert run.status.completion_time == T1
    assert run.status.steps["deploy"].status == RunStatus.SUCCESS

    # Later execution reports no longer change an ended run.
    await _report(store, _succeeded(ConditionStatus.FALSE, "Failed"))
    version = run.metadata.resource_version
    await reconciler.reconcile(RUN_KEY)
    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.SUCCESS
    assert run.metadata.resource_version == version


@pytest.mark.asyncio
async def test_reconcile_without_changes_writes_nothing():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    reconciler = WorkflowRunReconciler(store)
    await reconciler.reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    pr = await store.get(PipelineRun, RUN_KEY)
    cm = await store.get(ConfigMap, ResourceKey("team-a", "nightly-immutable"))

    await reconciler.reconcile(RUN_KEY)

    assert (await store.get(WorkflowRun, RUN_KEY)).metadata.resource_version == (
        run.metadata.resource_version
    )
    assert (await store.get(PipelineRun, RUN_KEY)).metadata.resource_version == (
        pr.metadata.resource_version
    )
    assert (
        await store.get(ConfigMap, ResourceKey("team-a", "nightly-immutable"))
    ).metadata.resource_version == cm.metadata.resource_version


@pytest.mark.asyncio
async def test_cancelling_a_started_run_cancels_execution():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    reconciler = WorkflowRunReconciler(store)
    await reconciler.reconcile(RUN_KEY)

    def request_cancel(run: WorkflowRun) -> None:
        run.spec.state.workflow[constants.CANCEL_STATE_KEY] = True

    await mutate(store, WorkflowRunHandle(RUN_KEY), request_cancel, timeout=1.0)
    await reconciler.reconcile(RUN_KEY)

    pr = await store.get(PipelineRun, RUN_KEY)
    assert pr.spec.status == constants.PIPELINE_RUN_CANCELLED
    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.CANCELLED
    assert run.status.steps["build"].status == RunStatus.SKIPPED
    assert run.status.steps["deploy"].status == RunStatus.SKIPPED


@pytest.mark.asyncio
async def test_run_cancelled_before_start_never_executes():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps(), cancelled=True)

    await WorkflowRunReconciler(store).reconcile(RUN_KEY)

    with pytest.raises(NotFoundError):
        await store.get(PipelineRun, RUN_KEY)
    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.CANCELLED
    assert run.status.completion_time is not None


@pytest.mark.asyncio
async def test_run_without_steps_succeeds_immediately():
    store = InMemoryObjectStore()
    await _setup(store)

    await WorkflowRunReconciler(store).reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.SUCCESS
    assert run.status.start_time is not None
    assert run.status.completion_time is not None
    assert await store.list(ConfigMap) == []
    with pytest.raises(NotFoundError):
        await store.get(PipelineRun, RUN_KEY)


@pytest.mark.asyncio
async def test_run_requires_its_namespace():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    await store.delete(Namespace, ResourceKey("", "team-a"))
    # Cascade removed the run along with its namespace; recreate it alone.
    await store.create(
        WorkflowRun(
            metadata=ObjectMeta(name=RUN_KEY.name, namespace=RUN_KEY.namespace),
            spec=WorkflowRunSpec(workflow=Workflow(steps=list(_two_steps()))),
        )
    )

    with pytest.raises(RequiredError):
        await WorkflowRunReconciler(store).reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status is None


@pytest.mark.asyncio
async def test_system_image_pull_secret_is_copied_into_run():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    source_key = ResourceKey("steward-system", "registry")
    await store.create(
        Secret(
            metadata=ObjectMeta(name=source_key.name, namespace=source_key.namespace),
            type="kubernetes.io/dockerconfigjson",
            data={".dockerconfigjson": "e30="},
        )
    )

    await WorkflowRunReconciler(store, image_pull_secret=source_key).reconcile(RUN_KEY)

    copy = await store.get(Secret, ResourceKey("team-a", "nightly-system"))
    assert copy.data == {".dockerconfigjson": "e30="}
    assert copy.type == "kubernetes.io/dockerconfigjson"
    system = await store.get(ServiceAccount, ResourceKey("team-a", "nightly-system"))
    assert system.image_pull_secrets == ["nightly-system"]


@pytest.mark.asyncio
async def test_missing_system_image_pull_secret_is_required():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    reconciler = WorkflowRunReconciler(
        store, image_pull_secret=ResourceKey("steward-system", "registry")
    )

    with pytest.raises(RequiredError):
        await reconciler.reconcile(RUN_KEY)


@pytest.mark.asyncio
async def test_deleting_run_removes_its_environment():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    # Not created for the run, must survive its deletion.
    await store.create(ConfigMap(metadata=ObjectMeta(name="shared", namespace="team-a")))
    reconciler = WorkflowRunReconciler(store)
    await reconciler.reconcile(RUN_KEY)

    await store.delete(WorkflowRun, RUN_KEY)
    await reconciler.reconcile(RUN_KEY)

    with pytest.raises(NotFoundError):
        await store.get(WorkflowRun, RUN_KEY)
    with pytest.raises(NotFoundError):
        await store.get(PipelineRun, RUN_KEY)
    assert [cm.metadata.name for cm in await store.list(ConfigMap, "team-a")] == ["shared"]
    assert await store.list(ServiceAccount, "team-a") == []
    await store.get(Namespace, ResourceKey("", "team-a"))


@pytest.mark.asyncio
async def test_cancelled_run_keeps_following_execution_until_it_ends():
    store = InMemoryObjectStore()
    await _setup(store, *_two_steps())
    reconciler = WorkflowRunReconciler(store)
    await reconciler.reconcile(RUN_KEY)

    build = step_hash("nightly", "build")
    await _report(
        store,
        _succeeded(ConditionStatus.UNKNOWN, "Running"),
        {"build-pod": TaskRunStatus(pipeline_task_name=build, condition=_succeeded(ConditionStatus.UNKNOWN))},
    )
    await reconciler.reconcile(RUN_KEY)

    def request_cancel(run: WorkflowRun) -> None:
        run.spec.state.workflow[constants.CANCEL_STATE_KEY] = True

    await mutate(store, WorkflowRunHandle(RUN_KEY), request_cancel, timeout=1.0)
    await reconciler.reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.CANCELLED
    assert run.status.steps["build"].status == RunStatus.IN_PROGRESS
    assert run.status.completion_time is None

    await _report(
        store,
        _succeeded(ConditionStatus.FALSE, "PipelineRunCancelled"),
        {
            "build-pod": TaskRunStatus(
                pipeline_task_name=build,
                condition=_succeeded(ConditionStatus.FALSE, "TaskRunCancelled"),
                start_time=T0,
                completion_time=T1,
            )
        },
        completion_time=T1,
    )
    await reconciler.reconcile(RUN_KEY)

    run = await store.get(WorkflowRun, RUN_KEY)
    assert run.status.status == RunStatus.CANCELLED
    assert run.status.completion_time == T1
    assert run.status.steps["build"].status == RunStatus.FAILURE
    assert run.status.steps["build"].completion_time == T1
    assert run.status.steps["deploy"].status == RunStatus.SKIPPED
