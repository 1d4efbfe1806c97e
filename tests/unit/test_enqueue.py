"""Tests for change notification through the enqueueing store."""

import pytest

from steward import constants
from steward.apis import ConfigMap, ObjectMeta, Tenant, WebhookTrigger, WorkflowRun
from steward.contracts import topic_for
from steward.lifecycle import ownership
from steward.store import EnqueueingStore, InMemoryObjectStore
from steward.transports import InMemoryTransport


def _setup():
    transport = InMemoryTransport()
    store = EnqueueingStore(
        InMemoryObjectStore(), transport, [Tenant.KIND, WorkflowRun.KIND]
    )
    return store, transport


async def _drain(transport: InMemoryTransport, kind: str) -> list:
    topic = topic_for(kind)
    requests = []
    while transport.pending(topic):
        async for raw, request in transport.subscribe(topic):
            requests.append(request)
            await transport.ack(raw)
            break
    return requests


@pytest.mark.asyncio
async def test_write_to_watched_kind_enqueues_itself():
    store, transport = _setup()
    run = WorkflowRun(metadata=ObjectMeta(name="nightly", namespace="team-a"))

    await store.create(run)

    requests = await _drain(transport, WorkflowRun.KIND)
    assert [(r.kind, r.key) for r in requests] == [("WorkflowRun", run.key)]


@pytest.mark.asyncio
async def test_noop_update_does_not_enqueue():
    store, transport = _setup()
    run = WorkflowRun(metadata=ObjectMeta(name="nightly", namespace="team-a"))
    await store.create(run)
    await _drain(transport, WorkflowRun.KIND)

    await store.update(run)
    await store.update_status(run)

    assert transport.pending(topic_for(WorkflowRun.KIND)) == 0


@pytest.mark.asyncio
async def test_dependent_change_enqueues_owners():
    store, transport = _setup()
    run = WorkflowRun(metadata=ObjectMeta(name="nightly", namespace="team-a"))
    await store.create(run)
    tenant = Tenant(metadata=ObjectMeta(name="acme", namespace="tenants"))
    await store.create(tenant)
    await _drain(transport, WorkflowRun.KIND)
    await _drain(transport, Tenant.KIND)

    cm = ConfigMap(metadata=ObjectMeta(name="nightly-mutable", namespace="team-a"))
    ownership.own(cm, run)
    ownership.set_dependency_of(cm, tenant)
    await store.create(cm)

    runs = await _drain(transport, WorkflowRun.KIND)
    tenants = await _drain(transport, Tenant.KIND)
    assert [r.key for r in runs] == [run.key]
    assert [r.key for r in tenants] == [tenant.key]
    assert transport.pending(topic_for(ConfigMap.KIND)) == 0


@pytest.mark.asyncio
async def test_delete_enqueues_the_deleted_object():
    store, transport = _setup()
    run = WorkflowRun(metadata=ObjectMeta(name="nightly", namespace="team-a"))
    await store.create(run)
    await _drain(transport, WorkflowRun.KIND)

    await store.delete(WorkflowRun, run.key)

    assert [r.key for r in await _drain(transport, WorkflowRun.KIND)] == [run.key]


@pytest.mark.asyncio
async def test_tenant_change_enqueues_triggers_labelled_with_its_name():
    transport = InMemoryTransport()
    store = EnqueueingStore(
        InMemoryObjectStore(), transport, [Tenant.KIND, WebhookTrigger.KIND]
    )
    labelled = WebhookTrigger(
        metadata=ObjectMeta(
            name="on-push",
            namespace="tenants",
            labels={constants.TENANT_NAME_LABEL: "acme"},
        )
    )
    other_tenant = WebhookTrigger(
        metadata=ObjectMeta(
            name="on-tag",
            namespace="tenants",
            labels={constants.TENANT_NAME_LABEL: "globex"},
        )
    )
    other_namespace = WebhookTrigger(
        metadata=ObjectMeta(
            name="on-push",
            namespace="elsewhere",
            labels={constants.TENANT_NAME_LABEL: "acme"},
        )
    )
    for trigger in (labelled, other_tenant, other_namespace):
        await store.create(trigger)
    await _drain(transport, WebhookTrigger.KIND)

    await store.create(Tenant(metadata=ObjectMeta(name="acme", namespace="tenants")))

    triggers = await _drain(transport, WebhookTrigger.KIND)
    assert [r.key for r in triggers] == [labelled.key]
    assert len(await _drain(transport, Tenant.KIND)) == 1


@pytest.mark.asyncio
async def test_labelled_triggers_are_ignored_when_not_watched():
    store, transport = _setup()
    await store.create(
        WebhookTrigger(
            metadata=ObjectMeta(
                name="on-push",
                namespace="tenants",
                labels={constants.TENANT_NAME_LABEL: "acme"},
            )
        )
    )

    await store.create(Tenant(metadata=ObjectMeta(name="acme", namespace="tenants")))

    assert transport.pending(topic_for(WebhookTrigger.KIND)) == 0
