"""Objects a tenant needs: its namespace, policies and event sink."""

from __future__ import annotations

import logging
from typing import List, Optional

from .. import apis, constants
from ..apis import Condition, ConditionStatus, ResourceKey
from ..lifecycle import IgnoreNilLoader, Loader, Loaders, RequiredLoader
from ..lifecycle import ownership
from ..resources import (
    LimitRangeHandle,
    NamespaceHandle,
    NetworkPolicyHandle,
    SecretHandle,
    TenantHandle,
)
from ..store.base import ObjectStore
from .conditions import aggregate, update_condition_if_transitioned
from .templates import configure_limit_range, configure_tenant_network_policy

logger = logging.getLogger(__name__)


class APITriggerEventSink:
    """Endpoint that webhook triggers of a tenant deliver events to."""

    def __init__(self, sink: apis.APITriggerEventSink, namespace: str) -> None:
        self.sink = sink
        self.token_secret: Optional[SecretHandle] = None
        if sink.token_from is not None:
            self.token_secret = SecretHandle(ResourceKey(namespace, sink.token_from.name))

    async def load(self, store: ObjectStore) -> bool:
        return await IgnoreNilLoader(self.token_secret).load(store)

    def url(self) -> Optional[str]:
        return self.sink.url or None

    def token(self) -> Optional[str]:
        if self.sink.token:
            return self.sink.token
        if self.token_secret is not None and self.sink.token_from is not None:
            return self.token_secret.object.data.get(self.sink.token_from.key) or None
        return None


class TenantDeps:
    """Dependency tree of a tenant.

    A tenant is managed when its namespace template names a namespace; that
    namespace then belongs to the tenant and carries a network policy and a
    limit range. An unmanaged tenant runs in its own, pre-existing namespace.
    """

    def __init__(self, tenant: TenantHandle) -> None:
        self.tenant = tenant
        key = tenant.key
        template_name = tenant.object.spec.namespace_template.metadata.name

        self.network_policy: Optional[NetworkPolicyHandle] = None
        self.limit_range: Optional[LimitRangeHandle] = None
        if template_name:
            self.namespace = NamespaceHandle(template_name)
            self.network_policy = NetworkPolicyHandle(ResourceKey(template_name, key.name))
            self.limit_range = LimitRangeHandle(ResourceKey(template_name, key.name))
        else:
            self.namespace = NamespaceHandle(key.namespace)

        # Left behind when the template moved the tenant to another namespace.
        self.stale_namespace: Optional[NamespaceHandle] = None
        previous = tenant.object.status.namespace
        if previous and previous != key.namespace and previous != self.namespace.name:
            self.stale_namespace = NamespaceHandle(previous)

        self.api_trigger_event_sink: Optional[APITriggerEventSink] = None
        sink = tenant.object.spec.trigger_event_sink.api
        if sink is not None:
            self.api_trigger_event_sink = APITriggerEventSink(sink, key.namespace)

    @property
    def managed(self) -> bool:
        return self.tenant.managed

    async def load(self, store: ObjectStore) -> bool:
        loaders: List[Loader] = [IgnoreNilLoader(self.stale_namespace)]
        if self.managed:
            loaders.extend([self.namespace, self.network_policy, self.limit_range])
        else:
            loaders.append(RequiredLoader(self.namespace))
        loaders.append(IgnoreNilLoader(self.api_trigger_event_sink))
        return await Loaders(loaders).load(store)

    async def persist(self, store: ObjectStore) -> None:
        if not self.managed:
            return
        await self.namespace.persist(store)
        await self.network_policy.persist(store)
        await self.limit_range.persist(store)

    async def delete_stale(self, store: ObjectStore) -> bool:
        stale = self.stale_namespace
        if stale is None or not stale.object.metadata.uid:
            return True
        if not ownership.is_dependency_of(stale.object, self.tenant.object):
            logger.info(f"Leaving {stale.object} alone: not created for {self.tenant.object}")
            return True
        return await stale.delete(store)

    async def delete(self, store: ObjectStore) -> bool:
        await self.delete_stale(store)
        if not self.managed or not self.namespace.object.metadata.uid:
            return True
        if not ownership.is_dependency_of(self.namespace.object, self.tenant.object):
            return True
        return await self.namespace.delete(store)


def configure_tenant_deps(deps: TenantDeps) -> None:
    if not deps.managed:
        return

    tenant = deps.tenant.object
    for handle in (deps.namespace, deps.network_policy, deps.limit_range):
        ownership.set_dependency_of(handle.object, tenant)

    ownership.label(deps.namespace.object, constants.TENANT_WORKLOAD_LABEL, "true")
    ownership.label_annotate_from(
        deps.namespace.object, tenant.spec.namespace_template.metadata
    )

    configure_tenant_network_policy(deps.network_policy)
    configure_limit_range(deps.limit_range)


def configure_tenant_status(
    tenant: TenantHandle,
    deps: Optional[TenantDeps],
    error: Optional[BaseException] = None,
) -> None:
    """Record namespace and event sink readiness on the tenant."""
    status = tenant.object.status
    conds = status.conditions

    if error is not None:
        namespace_ready = Condition(
            type=constants.CONDITION_NAMESPACE_READY,
            status=ConditionStatus.FALSE,
            reason="NamespaceError",
            message=str(error),
        )
    elif deps is not None:
        namespace_ready = Condition(
            type=constants.CONDITION_NAMESPACE_READY,
            status=ConditionStatus.TRUE,
            reason="NamespaceReady",
            message="The tenant namespace is ready.",
        )
    else:
        namespace_ready = Condition(type=constants.CONDITION_NAMESPACE_READY)
    update_condition_if_transitioned(conds, namespace_ready)

    event_sink_ready = Condition(type=constants.CONDITION_EVENT_SINK_READY)
    if deps is not None:
        sink = deps.api_trigger_event_sink
        if sink is None:
            event_sink_ready = Condition(
                type=constants.CONDITION_EVENT_SINK_READY,
                status=ConditionStatus.TRUE,
                reason="EventSinkMissing",
                message="The tenant does not have an event sink defined.",
            )
        elif not sink.url():
            event_sink_ready = Condition(
                type=constants.CONDITION_EVENT_SINK_READY,
                status=ConditionStatus.FALSE,
                reason="EventSinkNotConfigured",
                message="The API trigger event sink is missing an endpoint URL.",
            )
        elif not sink.token():
            event_sink_ready = Condition(
                type=constants.CONDITION_EVENT_SINK_READY,
                status=ConditionStatus.FALSE,
                reason="EventSinkNotConfigured",
                message="The API trigger event sink is missing a token.",
            )
        else:
            event_sink_ready = Condition(
                type=constants.CONDITION_EVENT_SINK_READY,
                status=ConditionStatus.TRUE,
                reason="EventSinkReady",
                message="The event sink is ready.",
            )
    update_condition_if_transitioned(conds, event_sink_ready)

    overall = aggregate(
        apis.get_condition(conds, t).status
        for t in (constants.CONDITION_NAMESPACE_READY, constants.CONDITION_EVENT_SINK_READY)
    )
    if overall == ConditionStatus.TRUE:
        ready = Condition(
            type=constants.CONDITION_READY,
            status=overall,
            reason="Ready",
            message="The tenant is configured.",
        )
    elif overall == ConditionStatus.FALSE:
        ready = Condition(
            type=constants.CONDITION_READY,
            status=overall,
            reason="Error",
            message="One or more tenant components failed.",
        )
    else:
        ready = Condition(type=constants.CONDITION_READY)
    update_condition_if_transitioned(conds, ready)

    if deps is not None and error is None:
        status.observed_generation = tenant.object.metadata.generation
        status.namespace = deps.namespace.name


def tenant_ready(tenant: TenantHandle) -> bool:
    cond = apis.get_condition(tenant.object.status.conditions, constants.CONDITION_READY)
    return cond is not None and cond.status == ConditionStatus.TRUE
