"""Object store abstraction with optimistic concurrency."""

from __future__ import annotations

import abc
import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type, TypeVar

from ..apis import KubeObject, ObjectMeta, ResourceKey, utcnow
from ..errors import AlreadyExistsError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

ObjectT = TypeVar("ObjectT", bound=KubeObject)

# (kind, namespace, name)
RecordKey = Tuple[str, str, str]


class ObjectStore(Protocol):
    """Protocol for backing stores holding versioned objects."""

    async def get(self, cls: Type[ObjectT], key: ResourceKey) -> ObjectT:
        """Return the stored object or raise ``NotFoundError``."""

    async def create(self, obj: KubeObject) -> None:
        """Store a new object, raising ``AlreadyExistsError`` if it exists.

        The object's metadata is refreshed with the stored identity.
        """

    async def update(self, obj: KubeObject) -> None:
        """Replace everything but the status of an existing object."""

    async def update_status(self, obj: KubeObject) -> None:
        """Replace only the status of an existing object."""

    async def delete(self, cls: Type[KubeObject], key: ResourceKey) -> None:
        """Delete an object, or mark it deleting while finalizers remain."""

    async def list(
        self, cls: Type[ObjectT], namespace: Optional[str] = None
    ) -> list[ObjectT]:
        """Return all objects of a kind, optionally within a namespace."""


class RecordStore(ObjectStore):
    """Implements object semantics on top of a plain record table.

    Subclasses only provide reads and writes of JSON-compatible records; this
    class enforces resource versions, finalizer-aware deletion and garbage
    collection of dependents whose owners are gone.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Record access
    @abc.abstractmethod
    async def _read(self, rkey: RecordKey) -> Dict[str, Any] | None:
        raise NotImplementedError

    @abc.abstractmethod
    async def _write(self, rkey: RecordKey, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def _remove(self, rkey: RecordKey) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def _scan(
        self, kind: Optional[str] = None
    ) -> List[Tuple[RecordKey, Dict[str, Any]]]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Helpers
    @staticmethod
    def _record_key(cls: Type[KubeObject], key: ResourceKey) -> RecordKey:
        namespace = key.namespace if cls.NAMESPACED else ""
        return (cls.KIND, namespace, key.name)

    @staticmethod
    def _new_revision() -> str:
        return uuid.uuid4().hex[:16]

    @staticmethod
    def _spec_of(record: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in record.items() if k not in ("metadata", "status")}

    def _refresh(self, obj: KubeObject, record: Dict[str, Any]) -> None:
        obj.metadata = ObjectMeta.model_validate(record["metadata"])

    # ------------------------------------------------------------------
    # Store API
    async def get(self, cls: Type[ObjectT], key: ResourceKey) -> ObjectT:
        record = await self._read(self._record_key(cls, key))
        if record is None:
            raise NotFoundError(cls.KIND, key)
        return cls.model_validate(record)

    async def create(self, obj: KubeObject) -> None:
        cls = type(obj)
        if not obj.metadata.name:
            raise ValueError(f"cannot create {cls.KIND} without a name")
        rkey = self._record_key(cls, obj.key)
        async with self._lock:
            if await self._read(rkey) is not None:
                raise AlreadyExistsError(cls.KIND, obj.key)

            record = obj.model_dump(mode="json")
            meta = record["metadata"]
            if not cls.NAMESPACED:
                meta["namespace"] = ""
            meta["uid"] = str(uuid.uuid4())
            meta["resource_version"] = self._new_revision()
            meta["generation"] = 1
            meta["creation_timestamp"] = utcnow().isoformat()
            meta["deletion_timestamp"] = None
            await self._write(rkey, record)

        self._refresh(obj, record)
        logger.info(f"Created {obj}")

    async def update(self, obj: KubeObject) -> None:
        cls = type(obj)
        rkey = self._record_key(cls, obj.key)
        async with self._lock:
            current = await self._read(rkey)
            self._check_version(cls, obj, current)

            record = obj.model_dump(mode="json")
            meta = record["metadata"]
            cur_meta = current["metadata"]
            for field in ("namespace", "uid", "creation_timestamp", "generation"):
                meta[field] = cur_meta[field]
            # Deletion can only be requested through delete().
            meta["deletion_timestamp"] = cur_meta["deletion_timestamp"]
            if cls.has_status():
                record["status"] = current["status"]

            if record == current:
                # No-op writes keep the resource version.
                record = current
            elif meta["deletion_timestamp"] and not meta["finalizers"]:
                await self._purge(rkey, record)
            else:
                if self._spec_of(record) != self._spec_of(current):
                    meta["generation"] += 1
                meta["resource_version"] = self._new_revision()
                await self._write(rkey, record)

        self._refresh(obj, record)
        logger.debug(f"Updated {obj}")

    async def update_status(self, obj: KubeObject) -> None:
        cls = type(obj)
        if not cls.has_status():
            raise TypeError(f"{cls.KIND} has no status")
        rkey = self._record_key(cls, obj.key)
        async with self._lock:
            current = await self._read(rkey)
            self._check_version(cls, obj, current)

            status = obj.model_dump(mode="json")["status"]
            if status != current["status"]:
                current["status"] = status
                current["metadata"]["resource_version"] = self._new_revision()
                await self._write(rkey, current)

        self._refresh(obj, current)
        logger.debug(f"Updated status of {obj}")

    async def delete(self, cls: Type[KubeObject], key: ResourceKey) -> None:
        rkey = self._record_key(cls, key)
        async with self._lock:
            record = await self._read(rkey)
            if record is None:
                raise NotFoundError(cls.KIND, key)
            await self._delete_record(rkey, record)

    async def list(
        self, cls: Type[ObjectT], namespace: Optional[str] = None
    ) -> list[ObjectT]:
        items = []
        for (_, ns, _), record in await self._scan(cls.KIND):
            if namespace is None or ns == namespace:
                items.append(cls.model_validate(record))
        items.sort(key=lambda o: o.key)
        return items

    # ------------------------------------------------------------------
    # Internals, called with the lock held
    def _check_version(
        self, cls: Type[KubeObject], obj: KubeObject, current: Dict[str, Any] | None
    ) -> None:
        if current is None:
            raise NotFoundError(cls.KIND, obj.key)
        if obj.metadata.uid and obj.metadata.uid != current["metadata"]["uid"]:
            raise ConflictError(
                cls.KIND, obj.key, f"{cls.KIND} {obj.key}: uid precondition failed"
            )
        if obj.metadata.resource_version != current["metadata"]["resource_version"]:
            raise ConflictError(cls.KIND, obj.key)

    async def _delete_record(self, rkey: RecordKey, record: Dict[str, Any]) -> None:
        meta = record["metadata"]
        if meta["finalizers"]:
            if not meta["deletion_timestamp"]:
                meta["deletion_timestamp"] = utcnow().isoformat()
                meta["resource_version"] = self._new_revision()
                await self._write(rkey, record)
                logger.info(f"Marked {rkey[0]} {rkey[1]}/{rkey[2]} for deletion")
            return
        await self._purge(rkey, record)

    async def _purge(self, rkey: RecordKey, record: Dict[str, Any]) -> None:
        kind, namespace, name = rkey
        await self._remove(rkey)
        logger.info(f"Deleted {kind} {namespace}/{name}")

        uid = record["metadata"]["uid"]
        for dep_key, dep in await self._scan():
            if kind == "Namespace" and dep_key[1] == name:
                await self._delete_pending(dep_key)
                continue

            refs = dep["metadata"]["owner_references"]
            if not any(ref["uid"] == uid for ref in refs):
                continue
            remaining = [ref for ref in refs if ref["uid"] != uid]
            if remaining and await self._any_owner_exists(dep_key[1], remaining):
                dep["metadata"]["owner_references"] = remaining
                dep["metadata"]["resource_version"] = self._new_revision()
                await self._write(dep_key, dep)
            else:
                await self._delete_pending(dep_key)

    async def _delete_pending(self, rkey: RecordKey) -> None:
        # Re-read: an earlier cascade step may already have removed it.
        record = await self._read(rkey)
        if record is not None:
            await self._delete_record(rkey, record)

    async def _any_owner_exists(self, namespace: str, refs: List[Dict[str, Any]]) -> bool:
        for ref in refs:
            owner = await self._read((ref["kind"], namespace, ref["name"]))
            if owner is None:
                owner = await self._read((ref["kind"], "", ref["name"]))
            if owner is not None and owner["metadata"]["uid"] == ref["uid"]:
                return True
        return False
