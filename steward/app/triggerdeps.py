"""Objects a webhook trigger needs inside its tenant's namespace."""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional

from .. import constants
from ..apis import Condition, ConditionStatus, ResourceKey
from ..lifecycle import IgnoreNilLoader, Loaders, ResourceHandle
from ..lifecycle import ownership
from ..resources import (
    ConfigMapHandle,
    NetworkPolicyHandle,
    RoleBindingHandle,
    RoleHandle,
    ServiceAccountHandle,
    TenantHandle,
    WebhookTriggerHandle,
)
from ..store.base import ObjectStore
from .conditions import update_condition_if_transitioned
from .tenantdeps import TenantDeps
from .templates import (
    configure_metadata_api_role,
    configure_metadata_api_role_binding,
    configure_metadata_api_service_account,
    configure_untrusted_service_account,
    configure_webhook_trigger_network_policy,
)

logger = logging.getLogger(__name__)


class WebhookTriggerDepsLoadResult(NamedTuple):
    upstream: bool
    all: bool


class WebhookTriggerDeps:
    """Dependency tree of a webhook trigger.

    Everything lives in the tenant's namespace under an owner config map,
    which is the only object recorded as a dependency of the trigger itself.
    Deleting the owner config map takes the rest with it.
    """

    def __init__(self, trigger: WebhookTriggerHandle) -> None:
        self.trigger = trigger
        self.tenant = TenantHandle(
            ResourceKey(trigger.namespace, trigger.object.spec.tenant_ref)
        )
        self.tenant_deps: Optional[TenantDeps] = None

        self.stale_owner_config_map: Optional[ConfigMapHandle] = None
        self.owner_config_map: Optional[ConfigMapHandle] = None
        self.network_policy: Optional[NetworkPolicyHandle] = None
        self.immutable_config_map: Optional[ConfigMapHandle] = None
        self.mutable_config_map: Optional[ConfigMapHandle] = None
        self.metadata_api_service_account: Optional[ServiceAccountHandle] = None
        self.metadata_api_role: Optional[RoleHandle] = None
        self.metadata_api_role_binding: Optional[RoleBindingHandle] = None
        self.untrusted_service_account: Optional[ServiceAccountHandle] = None

    def _owner_key(self, namespace: str) -> ResourceKey:
        return ownership.suffix_object_key(ResourceKey(namespace, self.trigger.name), "owner")

    def _stale_owner(self, current_namespace: Optional[str]) -> Optional[ConfigMapHandle]:
        previous = self.trigger.object.status.namespace
        if not previous or previous == current_namespace:
            return None
        return ConfigMapHandle(self._owner_key(previous))

    def dependents(self) -> List[ResourceHandle]:
        """Objects owned by the owner config map, in persist order."""
        return [
            self.network_policy,
            self.immutable_config_map,
            self.mutable_config_map,
            self.metadata_api_service_account,
            self.metadata_api_role,
            self.metadata_api_role_binding,
            self.untrusted_service_account,
        ]

    async def load(self, store: ObjectStore) -> WebhookTriggerDepsLoadResult:
        ready = await self.tenant.load(store)
        if ready:
            tenant_deps = TenantDeps(self.tenant)
            ready = await tenant_deps.load(store)
        if not ready:
            # Without a ready tenant only our leftovers can be found.
            self.stale_owner_config_map = self._stale_owner(None)
            await IgnoreNilLoader(self.stale_owner_config_map).load(store)
            return WebhookTriggerDepsLoadResult(upstream=False, all=False)
        self.tenant_deps = tenant_deps

        namespace = self.tenant_deps.namespace.name
        key = ResourceKey(namespace, self.trigger.name)

        self.stale_owner_config_map = self._stale_owner(namespace)
        self.owner_config_map = ConfigMapHandle(self._owner_key(namespace))
        self.network_policy = NetworkPolicyHandle(key)
        self.immutable_config_map = ConfigMapHandle(ownership.suffix_object_key(key, "immutable"))
        self.mutable_config_map = ConfigMapHandle(ownership.suffix_object_key(key, "mutable"))
        self.metadata_api_service_account = ServiceAccountHandle(
            ownership.suffix_object_key(key, "metadata-api")
        )
        self.metadata_api_role = RoleHandle(ownership.suffix_object_key(key, "metadata-api"))
        self.metadata_api_role_binding = RoleBindingHandle(
            ownership.suffix_object_key(key, "metadata-api")
        )
        self.untrusted_service_account = ServiceAccountHandle(
            ownership.suffix_object_key(key, "untrusted")
        )

        found = await Loaders(
            [IgnoreNilLoader(self.stale_owner_config_map), self.owner_config_map]
            + self.dependents()
        ).load(store)
        return WebhookTriggerDepsLoadResult(upstream=True, all=found)

    async def persist(self, store: ObjectStore) -> None:
        await self.delete_stale(store)

        # The owner needs an identity before anything can reference it.
        await self.owner_config_map.persist(store)
        for dependent in self.dependents():
            self.owner_config_map.own(dependent)
        for dependent in self.dependents():
            await dependent.persist(store)

    async def delete_stale(self, store: ObjectStore) -> bool:
        stale = self.stale_owner_config_map
        if stale is None or not stale.object.metadata.uid:
            return True
        if not ownership.is_dependency_of(stale.object, self.trigger.object):
            logger.info(f"Leaving {stale.object} alone: not created for {self.trigger.object}")
            return True
        return await stale.delete(store)

    async def delete(self, store: ObjectStore) -> bool:
        await self.delete_stale(store)
        owner = self.owner_config_map
        if owner is None or not owner.object.metadata.uid:
            return True
        if not ownership.is_dependency_of(owner.object, self.trigger.object):
            return True
        return await owner.delete(store)


def configure_webhook_trigger_deps(deps: WebhookTriggerDeps) -> None:
    trigger = deps.trigger.object
    ownership.set_dependency_of(deps.owner_config_map.object, trigger)

    for dependent in deps.dependents():
        dependent.label_annotate_from(trigger)
        ownership.label(dependent.object, constants.WEBHOOK_TRIGGER_LABEL, trigger.metadata.name)

    configure_webhook_trigger_network_policy(
        deps.network_policy, {constants.WEBHOOK_TRIGGER_LABEL: trigger.metadata.name}
    )

    immutable = deps.immutable_config_map
    immutable.object.data = {}
    if trigger.spec.spec:
        immutable.set_json("trigger.spec", trigger.spec.spec)
    if trigger.spec.input:
        immutable.object.data["trigger.script"] = "\n".join(trigger.spec.input)
    if trigger.spec.env:
        immutable.set_json("trigger.env", trigger.spec.env)

    configure_metadata_api_service_account(deps.metadata_api_service_account)
    configure_metadata_api_role(
        deps.metadata_api_role, deps.immutable_config_map, deps.mutable_config_map
    )
    configure_metadata_api_role_binding(
        deps.metadata_api_role_binding,
        deps.metadata_api_service_account,
        deps.metadata_api_role,
    )
    configure_untrusted_service_account(deps.untrusted_service_account)


def configure_webhook_trigger_status(
    trigger: WebhookTriggerHandle,
    deps: WebhookTriggerDeps,
    error: Optional[BaseException] = None,
) -> None:
    status = trigger.object.status

    if error is not None:
        ready = Condition(
            type=constants.CONDITION_READY,
            status=ConditionStatus.FALSE,
            reason="Error",
            message=str(error),
        )
    elif deps.tenant_deps is None or deps.owner_config_map is None:
        ready = Condition(
            type=constants.CONDITION_READY,
            reason="TenantNotReady",
            message="The tenant of this trigger is not ready.",
        )
    else:
        ready = Condition(
            type=constants.CONDITION_READY,
            status=ConditionStatus.TRUE,
            reason="Ready",
            message="The webhook trigger is configured.",
        )
    update_condition_if_transitioned(status.conditions, ready)

    if error is None and deps.tenant_deps is not None and deps.owner_config_map is not None:
        status.observed_generation = trigger.object.metadata.generation
        status.namespace = deps.tenant_deps.namespace.name
