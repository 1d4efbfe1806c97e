"""Resource handles and the loaders and persisters composed from them."""

from __future__ import annotations

import logging
from typing import (
    ClassVar,
    Generic,
    Iterable,
    Optional,
    Protocol,
    Type,
    TypeVar,
    runtime_checkable,
)

from ..apis import KubeObject, ResourceKey
from ..errors import AlreadyExistsError, NotFoundError, RequiredError
from ..store.base import ObjectStore
from . import ownership

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=KubeObject)


@runtime_checkable
class Loader(Protocol):
    async def load(self, store: ObjectStore) -> bool:
        """Load state from the store, returning whether it was found."""


@runtime_checkable
class Persister(Protocol):
    async def persist(self, store: ObjectStore) -> None:
        """Write state to the store."""


@runtime_checkable
class Deleter(Protocol):
    async def delete(self, store: ObjectStore) -> bool:
        """Delete from the store, returning whether anything was deleted."""


@runtime_checkable
class Ownable(Protocol):
    def owned_by(self, owner: KubeObject) -> None:
        """Attach a controller reference to ``owner``."""


class ResourceHandle(Generic[T]):
    """A key plus the object last loaded from (or about to go to) the store."""

    resource_class: ClassVar[Type[KubeObject]]

    def __init__(self, key: ResourceKey, obj: Optional[T] = None) -> None:
        if not self.resource_class.NAMESPACED:
            key = ResourceKey("", key.name)
        self.key = key
        self.object: T = obj if obj is not None else self.new_object()

    def new_object(self) -> T:
        return self.resource_class.new(self.key)  # type: ignore[return-value]

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def namespace(self) -> str:
        return self.key.namespace

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.key})"

    async def load(self, store: ObjectStore) -> bool:
        try:
            self.object = await store.get(self.resource_class, self.key)
        except NotFoundError:
            logger.debug(f"{self.resource_class.KIND} {self.key} not found")
            self.object = self.new_object()
            return False
        return True

    async def persist(self, store: ObjectStore) -> None:
        """Create the object if it has never been stored, otherwise update it."""
        if not self.object.metadata.uid:
            await store.create(self.object)
        else:
            await store.update(self.object)

    async def ensure(self, store: ObjectStore) -> bool:
        """Create the object unless it already exists.

        Returns True if the object was created by this call. An existing
        object is loaded in place of the local copy.
        """
        if self.object.metadata.uid:
            return False
        try:
            await store.create(self.object)
        except AlreadyExistsError:
            await self.load(store)
            return False
        return True

    async def delete(self, store: ObjectStore) -> bool:
        try:
            await store.delete(self.resource_class, self.key)
        except NotFoundError:
            return False
        return True

    def owned_by(self, owner: KubeObject) -> None:
        ownership.own(self.object, owner)

    def own(self, target: Ownable) -> None:
        target.owned_by(self.object)

    def label_annotate_from(self, source: KubeObject) -> None:
        ownership.copy_labels_and_annotations(self.object, source)


class StatusHandle(ResourceHandle[T]):
    """Handle for kinds with a separately written status."""

    async def persist_status(self, store: ObjectStore) -> None:
        await store.update_status(self.object)


# ----------------------------------------------------------------------
# Composites


class Loaders:
    """Load several members in order.

    An error from any member stops loading immediately. Otherwise every member
    is loaded and the result is True only if all of them were found.
    """

    def __init__(self, loaders: Iterable[Loader]) -> None:
        self.loaders = list(loaders)

    async def load(self, store: ObjectStore) -> bool:
        all_found = True
        for loader in self.loaders:
            if not await loader.load(store):
                all_found = False
        return all_found


class IgnoreNilLoader:
    def __init__(self, loader: Optional[Loader]) -> None:
        self.loader = loader

    async def load(self, store: ObjectStore) -> bool:
        if self.loader is None:
            return True
        return await self.loader.load(store)


class IgnoreNilPersister:
    def __init__(self, persister: Optional[Persister]) -> None:
        self.persister = persister

    async def persist(self, store: ObjectStore) -> None:
        if self.persister is not None:
            await self.persister.persist(store)


class IgnoreNilOwnable:
    def __init__(self, ownable: Optional[Ownable]) -> None:
        self.ownable = ownable

    def owned_by(self, owner: KubeObject) -> None:
        if self.ownable is not None:
            self.ownable.owned_by(owner)


class RequiredLoader:
    """Treat a missing object as an error instead of a boolean."""

    def __init__(self, loader: Loader) -> None:
        self.loader = loader

    async def load(self, store: ObjectStore) -> bool:
        if not await self.loader.load(store):
            raise RequiredError(_describe(self.loader))
        return True


def _describe(loader: object) -> object:
    while not hasattr(loader, "key") and hasattr(loader, "loader"):
        loader = loader.loader
    return getattr(loader, "key", loader)
