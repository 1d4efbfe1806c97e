"""Reconciles tenants."""

from __future__ import annotations

import logging

from .. import constants
from ..apis import ResourceKey, Tenant
from ..app.tenantdeps import TenantDeps, configure_tenant_deps, configure_tenant_status
from ..errors import OwnerInOtherNamespaceError, RequiredError
from ..lifecycle import finalize
from ..resources import TenantHandle
from ..store.base import ObjectStore

logger = logging.getLogger(__name__)


class TenantReconciler:
    kind = Tenant.KIND

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    async def reconcile(self, key: ResourceKey) -> bool:
        tenant = TenantHandle(key)
        if not await tenant.load(self.store):
            logger.debug(f"Tenant {key} is gone")
            return False

        deps = TenantDeps(tenant)

        async def cleanup() -> None:
            try:
                await deps.load(self.store)
            except RequiredError as e:
                logger.info(f"Nothing left to clean up for tenant {key}: {e}")
            await deps.delete(self.store)

        if await finalize(self.store, constants.TENANT_FINALIZER, tenant, cleanup):
            return False

        try:
            await deps.load(self.store)
            await deps.delete_stale(self.store)
            configure_tenant_deps(deps)
            await deps.persist(self.store)
        except (RequiredError, OwnerInOtherNamespaceError) as e:
            configure_tenant_status(tenant, deps, error=e)
            await tenant.persist_status(self.store)
            raise

        configure_tenant_status(tenant, deps)
        await tenant.persist_status(self.store)
        logger.info(f"Reconciled tenant {key}")
        return False
