"""Store wrapper that turns writes into reconcile requests."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple, Type

from .. import constants
from ..apis import KubeObject, ResourceKey, Tenant, WebhookTrigger
from ..errors import NotFoundError
from ..lifecycle.ownership import dependency_of
from ..transports import BaseTransport
from .base import ObjectStore, ObjectT

logger = logging.getLogger(__name__)

# Kinds that point at another object by name through a label, keyed by the
# kind they point at.
LABEL_REFERENCES: Dict[str, List[Tuple[Type[KubeObject], str]]] = {
    Tenant.KIND: [(WebhookTrigger, constants.TENANT_NAME_LABEL)],
}


class EnqueueingStore(ObjectStore):
    """Delegate to another store, publishing a request after every change.

    A change to an object enqueues the object itself when its kind is watched,
    every watched owner named by its owner references or its dependency-of
    record, and every watched object in the same namespace whose reference
    label names it.
    """

    def __init__(
        self, store: ObjectStore, transport: BaseTransport, kinds: Iterable[str]
    ) -> None:
        self._store = store
        self._transport = transport
        self._kinds: Set[str] = set(kinds)

    @property
    def inner(self) -> ObjectStore:
        return self._store

    async def get(self, cls: Type[ObjectT], key: ResourceKey) -> ObjectT:
        return await self._store.get(cls, key)

    async def list(
        self, cls: Type[ObjectT], namespace: Optional[str] = None
    ) -> list[ObjectT]:
        return await self._store.list(cls, namespace)

    async def create(self, obj: KubeObject) -> None:
        await self._store.create(obj)
        await self._notify(obj)

    async def update(self, obj: KubeObject) -> None:
        before = obj.metadata.resource_version
        await self._store.update(obj)
        if obj.metadata.resource_version != before:
            await self._notify(obj)

    async def update_status(self, obj: KubeObject) -> None:
        before = obj.metadata.resource_version
        await self._store.update_status(obj)
        if obj.metadata.resource_version != before:
            await self._notify(obj)

    async def delete(self, cls: Type[KubeObject], key: ResourceKey) -> None:
        try:
            obj = await self._store.get(cls, key)
        except NotFoundError:
            obj = None
        await self._store.delete(cls, key)
        if obj is not None:
            await self._notify(obj)

    # ------------------------------------------------------------------
    async def _notify(self, obj: KubeObject) -> None:
        targets: list[tuple[str, ResourceKey]] = []
        if obj.KIND in self._kinds:
            targets.append((obj.KIND, obj.key))

        for ref in obj.metadata.owner_references:
            if ref.kind in self._kinds:
                targets.append((ref.kind, ResourceKey(obj.metadata.namespace, ref.name)))

        try:
            record = dependency_of(obj)
        except ValueError as e:
            logger.warning(f"Ignoring unreadable dependency-of record on {obj}: {e}")
            record = None
        if record is not None and record.kind in self._kinds:
            targets.append((record.kind, ResourceKey(record.namespace, record.name)))

        targets.extend(await self._referring(obj))

        seen = set()
        for kind, key in targets:
            if (kind, key) in seen:
                continue
            seen.add((kind, key))
            await self._transport.request_reconcile(kind, key)
            logger.debug(f"Enqueued {kind} {key} after change to {obj}")

    async def _referring(self, obj: KubeObject) -> list[tuple[str, ResourceKey]]:
        targets = []
        for cls, label in LABEL_REFERENCES.get(obj.KIND, []):
            if cls.KIND not in self._kinds:
                continue
            for referrer in await self._store.list(cls, obj.metadata.namespace):
                if referrer.metadata.labels.get(label) == obj.metadata.name:
                    targets.append((cls.KIND, referrer.key))
        return targets
