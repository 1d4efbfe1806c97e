"""Reconciles webhook triggers."""

from __future__ import annotations

import logging

from .. import constants
from ..apis import ResourceKey, WebhookTrigger
from ..app.triggerdeps import (
    WebhookTriggerDeps,
    configure_webhook_trigger_deps,
    configure_webhook_trigger_status,
)
from ..errors import RequiredError
from ..lifecycle import finalize, ownership
from ..resources import WebhookTriggerHandle
from ..store.base import ObjectStore

logger = logging.getLogger(__name__)


class WebhookTriggerReconciler:
    kind = WebhookTrigger.KIND

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    async def reconcile(self, key: ResourceKey) -> bool:
        trigger = WebhookTriggerHandle(key)
        if not await trigger.load(self.store):
            logger.debug(f"Webhook trigger {key} is gone")
            return False

        deps = WebhookTriggerDeps(trigger)

        async def cleanup() -> None:
            try:
                await deps.load(self.store)
            except RequiredError as e:
                logger.info(f"Tenant of webhook trigger {key} has no namespace: {e}")
            await deps.delete(self.store)

        if await finalize(self.store, constants.WEBHOOK_TRIGGER_FINALIZER, trigger, cleanup):
            return False

        if ownership.label(
            trigger.object, constants.TENANT_NAME_LABEL, trigger.object.spec.tenant_ref
        ):
            await trigger.persist(self.store)

        result = await deps.load(self.store)
        if not result.upstream:
            configure_webhook_trigger_status(trigger, deps)
            await trigger.persist_status(self.store)
            logger.info(f"Tenant of webhook trigger {key} is not ready; waiting")
            return True

        configure_webhook_trigger_deps(deps)
        await deps.persist(self.store)

        configure_webhook_trigger_status(trigger, deps)
        await trigger.persist_status(self.store)
        logger.info(f"Reconciled webhook trigger {key}")
        return False
