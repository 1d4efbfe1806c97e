import pytest

from steward import constants
from steward.apis import (
    APITriggerEventSink,
    ConditionStatus,
    LimitRange,
    Namespace,
    NamespaceTemplate,
    NetworkPolicy,
    ObjectMeta,
    ResourceKey,
    Secret,
    SecretKeySelector,
    Tenant,
    TenantSpec,
    TriggerEventSink,
    get_condition,
)
from steward.errors import NotFoundError, RequiredError
from steward.lifecycle import ownership
from steward.reconciler import TenantReconciler
from steward.store import InMemoryObjectStore

KEY = ResourceKey("tenants", "acme")


def _tenant(namespace: str = "acme-workloads", **spec) -> Tenant:
    template = NamespaceTemplate(metadata=ObjectMeta(name=namespace, labels={"team": "acme"}))
    return Tenant(
        metadata=ObjectMeta(name=KEY.name, namespace=KEY.namespace),
        spec=TenantSpec(namespace_template=template, **spec),
    )


def _condition(tenant: Tenant, type_: str) -> ConditionStatus:
    return get_condition(tenant.status.conditions, type_).status


@pytest.mark.asyncio
async def test_managed_tenant_gets_namespace_and_policies():
    store = InMemoryObjectStore()
    await store.create(_tenant())

    await TenantReconciler(store).reconcile(KEY)

    ns = await store.get(Namespace, ResourceKey("", "acme-workloads"))
    assert ns.metadata.labels[constants.TENANT_WORKLOAD_LABEL] == "true"
    assert ns.metadata.labels["team"] == "acme"

    tenant = await store.get(Tenant, KEY)
    assert ownership.is_dependency_of(ns, tenant)
    assert constants.TENANT_FINALIZER in tenant.metadata.finalizers

    np = await store.get(NetworkPolicy, ResourceKey("acme-workloads", "acme"))
    assert np.spec.policy_types == ["Ingress", "Egress"]
    lr = await store.get(LimitRange, ResourceKey("acme-workloads", "acme"))
    assert lr.spec.limits[0].default == {"cpu": "750m", "memory": "2Gi"}

    assert tenant.status.namespace == "acme-workloads"
    assert tenant.status.observed_generation == tenant.metadata.generation
    assert _condition(tenant, constants.CONDITION_NAMESPACE_READY) == ConditionStatus.TRUE
    assert _condition(tenant, constants.CONDITION_EVENT_SINK_READY) == ConditionStatus.TRUE
    assert _condition(tenant, constants.CONDITION_READY) == ConditionStatus.TRUE


@pytest.mark.asyncio
async def test_reconcile_is_idempotent():
    store = InMemoryObjectStore()
    await store.create(_tenant())
    reconciler = TenantReconciler(store)
    await reconciler.reconcile(KEY)

    before = {
        kind.KIND: (await store.get(kind, key)).metadata.resource_version
        for kind, key in [
            (Tenant, KEY),
            (Namespace, ResourceKey("", "acme-workloads")),
            (NetworkPolicy, ResourceKey("acme-workloads", "acme")),
            (LimitRange, ResourceKey("acme-workloads", "acme")),
        ]
    }
    await reconciler.reconcile(KEY)
    after = {
        kind.KIND: (await store.get(kind, key)).metadata.resource_version
        for kind, key in [
            (Tenant, KEY),
            (Namespace, ResourceKey("", "acme-workloads")),
            (NetworkPolicy, ResourceKey("acme-workloads", "acme")),
            (LimitRange, ResourceKey("acme-workloads", "acme")),
        ]
    }
    assert before == after


@pytest.mark.asyncio
async def test_moving_namespace_deletes_the_stale_one():
    store = InMemoryObjectStore()
    await store.create(_tenant())
    reconciler = TenantReconciler(store)
    await reconciler.reconcile(KEY)

    tenant = await store.get(Tenant, KEY)
    tenant.spec.namespace_template.metadata.name = "acme-v2"
    await store.update(tenant)
    await reconciler.reconcile(KEY)

    with pytest.raises(NotFoundError):
        await store.get(Namespace, ResourceKey("", "acme-workloads"))
    with pytest.raises(NotFoundError):
        await store.get(NetworkPolicy, ResourceKey("acme-workloads", "acme"))
    await store.get(Namespace, ResourceKey("", "acme-v2"))
    assert (await store.get(Tenant, KEY)).status.namespace == "acme-v2"


@pytest.mark.asyncio
async def test_stale_namespace_not_created_for_tenant_is_left_alone():
    store = InMemoryObjectStore()
    await store.create(Namespace(metadata=ObjectMeta(name="shared")))
    tenant = _tenant()
    await store.create(tenant)
    tenant.status.namespace = "shared"
    await store.update_status(tenant)

    await TenantReconciler(store).reconcile(KEY)

    await store.get(Namespace, ResourceKey("", "shared"))
    assert (await store.get(Tenant, KEY)).status.namespace == "acme-workloads"


@pytest.mark.asyncio
async def test_unmanaged_tenant_requires_its_namespace():
    store = InMemoryObjectStore()
    await store.create(
        Tenant(metadata=ObjectMeta(name=KEY.name, namespace=KEY.namespace))
    )
    reconciler = TenantReconciler(store)

    with pytest.raises(RequiredError):
        await reconciler.reconcile(KEY)
    tenant = await store.get(Tenant, KEY)
    assert _condition(tenant, constants.CONDITION_NAMESPACE_READY) == ConditionStatus.FALSE
    assert _condition(tenant, constants.CONDITION_READY) == ConditionStatus.FALSE

    await store.create(Namespace(metadata=ObjectMeta(name="tenants")))
    await reconciler.reconcile(KEY)

    tenant = await store.get(Tenant, KEY)
    assert tenant.status.namespace == "tenants"
    assert _condition(tenant, constants.CONDITION_READY) == ConditionStatus.TRUE
    # Nothing is created for an unmanaged tenant.
    assert await store.list(NetworkPolicy) == []


@pytest.mark.asyncio
async def test_event_sink_readiness():
    store = InMemoryObjectStore()
    sink = APITriggerEventSink(
        url="https://events.example.com",
        token_from=SecretKeySelector(name="sink-token", key="token"),
    )
    await store.create(_tenant(trigger_event_sink=TriggerEventSink(api=sink)))
    reconciler = TenantReconciler(store)

    await reconciler.reconcile(KEY)
    tenant = await store.get(Tenant, KEY)
    assert _condition(tenant, constants.CONDITION_EVENT_SINK_READY) == ConditionStatus.FALSE
    assert _condition(tenant, constants.CONDITION_READY) == ConditionStatus.FALSE

    await store.create(
        Secret(
            metadata=ObjectMeta(name="sink-token", namespace="tenants"),
            data={"token": "s3cr3t"},
        )
    )
    await reconciler.reconcile(KEY)
    tenant = await store.get(Tenant, KEY)
    assert _condition(tenant, constants.CONDITION_EVENT_SINK_READY) == ConditionStatus.TRUE
    assert _condition(tenant, constants.CONDITION_READY) == ConditionStatus.TRUE


@pytest.mark.asyncio
async def test_deleting_tenant_removes_its_namespace():
    store = InMemoryObjectStore()
    await store.create(_tenant())
    reconciler = TenantReconciler(store)
    await reconciler.reconcile(KEY)

    await store.delete(Tenant, KEY)
    assert (await store.get(Tenant, KEY)).is_deleting()

    await reconciler.reconcile(KEY)

    with pytest.raises(NotFoundError):
        await store.get(Tenant, KEY)
    with pytest.raises(NotFoundError):
        await store.get(Namespace, ResourceKey("", "acme-workloads"))
    assert await store.list(LimitRange) == []

    # A vanished tenant is simply done.
    assert await reconciler.reconcile(KEY) is False
