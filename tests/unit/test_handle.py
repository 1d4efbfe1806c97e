"""Tests for resource handles and composite loaders."""

import pytest

from steward.apis import ConfigMap, ResourceKey
from steward.errors import ConflictError, NotFoundError, RequiredError
from steward.lifecycle import (
    IgnoreNilLoader,
    IgnoreNilOwnable,
    IgnoreNilPersister,
    Loaders,
    RequiredLoader,
)
from steward.resources import ConfigMapHandle, NamespaceHandle
from steward.store import InMemoryObjectStore


class RecordingLoader:
    def __init__(self, found: bool = True, error: Exception | None = None) -> None:
        self.found = found
        self.error = error
        self.calls = 0

    async def load(self, store) -> bool:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.found


@pytest.mark.asyncio
async def test_load_missing_object_returns_false_with_identity():
    store = InMemoryObjectStore()
    handle = ConfigMapHandle(ResourceKey("team-a", "missing"))
    handle.object.data["stale"] = "value"

    assert await handle.load(store) is False
    assert handle.object.metadata.namespace == "team-a"
    assert handle.object.metadata.name == "missing"
    assert handle.object.data == {}


@pytest.mark.asyncio
async def test_persist_creates_then_updates():
    store = InMemoryObjectStore()
    handle = ConfigMapHandle(ResourceKey("team-a", "settings"))
    handle.object.data["a"] = "1"

    await handle.persist(store)
    assert handle.object.metadata.uid

    handle.object.data["a"] = "2"
    await handle.persist(store)

    stored = await store.get(ConfigMap, handle.key)
    assert stored.data == {"a": "2"}
    assert stored.metadata.uid == handle.object.metadata.uid


@pytest.mark.asyncio
async def test_persist_with_stale_version_conflicts():
    store = InMemoryObjectStore()
    first = ConfigMapHandle(ResourceKey("team-a", "settings"))
    await first.persist(store)

    second = ConfigMapHandle(first.key)
    await second.load(store)
    second.object.data["x"] = "y"
    await second.persist(store)

    first.object.data["x"] = "z"
    with pytest.raises(ConflictError):
        await first.persist(store)


@pytest.mark.asyncio
async def test_ensure_loads_existing_object():
    store = InMemoryObjectStore()
    existing = ConfigMapHandle(ResourceKey("team-a", "settings"))
    existing.object.data["owner"] = "first"
    await existing.persist(store)

    handle = ConfigMapHandle(existing.key)
    handle.object.data["owner"] = "second"
    assert await handle.ensure(store) is False
    assert handle.object.data == {"owner": "first"}
    assert handle.object.metadata.uid == existing.object.metadata.uid


@pytest.mark.asyncio
async def test_delete_is_idempotent():
    store = InMemoryObjectStore()
    handle = ConfigMapHandle(ResourceKey("team-a", "settings"))
    await handle.persist(store)

    assert await handle.delete(store) is True
    assert await handle.delete(store) is False
    with pytest.raises(NotFoundError):
        await store.get(ConfigMap, handle.key)


def test_cluster_scoped_handle_drops_namespace():
    handle = NamespaceHandle("team-a")
    assert handle.key == ResourceKey("", "team-a")
    assert handle.object.metadata.name == "team-a"


@pytest.mark.asyncio
async def test_loaders_report_all_found():
    store = InMemoryObjectStore()
    assert await Loaders([RecordingLoader(), RecordingLoader()]).load(store) is True


@pytest.mark.asyncio
async def test_loaders_load_every_member_when_some_are_missing():
    store = InMemoryObjectStore()
    members = [RecordingLoader(found=False), RecordingLoader(), RecordingLoader()]

    assert await Loaders(members).load(store) is False
    assert [m.calls for m in members] == [1, 1, 1]


@pytest.mark.asyncio
async def test_loaders_stop_at_first_error():
    store = InMemoryObjectStore()
    members = [
        RecordingLoader(),
        RecordingLoader(error=RuntimeError("boom")),
        RecordingLoader(),
    ]

    with pytest.raises(RuntimeError):
        await Loaders(members).load(store)
    assert [m.calls for m in members] == [1, 1, 0]


@pytest.mark.asyncio
async def test_empty_loaders_are_vacuously_found():
    assert await Loaders([]).load(InMemoryObjectStore()) is True


@pytest.mark.asyncio
async def test_ignore_nil_members_succeed_vacuously():
    store = InMemoryObjectStore()
    assert await IgnoreNilLoader(None).load(store) is True
    assert await IgnoreNilLoader(RecordingLoader(found=False)).load(store) is False
    await IgnoreNilPersister(None).persist(store)
    IgnoreNilOwnable(None).owned_by(ConfigMap())


@pytest.mark.asyncio
async def test_required_loader_raises_for_missing_object():
    store = InMemoryObjectStore()
    key = ResourceKey("team-a", "missing")

    with pytest.raises(RequiredError) as exc:
        await RequiredLoader(ConfigMapHandle(key)).load(store)
    assert exc.value.key == key

    with pytest.raises(RequiredError) as exc:
        await RequiredLoader(IgnoreNilLoader(ConfigMapHandle(key))).load(store)
    assert exc.value.key == key

    assert await RequiredLoader(IgnoreNilLoader(None)).load(store) is True


@pytest.mark.asyncio
async def test_required_loader_fails_fast_inside_loaders():
    store = InMemoryObjectStore()
    after = RecordingLoader()

    with pytest.raises(RequiredError):
        await Loaders(
            [RequiredLoader(ConfigMapHandle(ResourceKey("team-a", "missing"))), after]
        ).load(store)
    assert after.calls == 0
