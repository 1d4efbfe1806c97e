"""Finalizer protocol: run cleanup exactly before an object may go away."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from ..store.base import ObjectStore
from . import ownership
from .handle import ResourceHandle

logger = logging.getLogger(__name__)


async def finalize(
    store: ObjectStore,
    name: str,
    target: ResourceHandle,
    cleanup: Callable[[], Awaitable[None]],
) -> bool:
    """Drive the finalizer ``name`` on ``target``.

    Returns True when the object is being deleted and the caller should stop
    reconciling it. While the object is live the finalizer is added (and
    persisted) if missing. Once deletion has been requested, ``cleanup`` runs
    and the finalizer is removed only after it succeeds; a failing cleanup
    propagates and leaves the finalizer in place for the next attempt.
    """
    obj = target.object

    if obj.is_deleting():
        if ownership.has_finalizer(obj, name):
            logger.info(f"Running finalizer {name} for {obj}")
            await cleanup()
            ownership.remove_finalizer(obj, name)
            await target.persist(store)
        return True

    if ownership.add_finalizer(obj, name):
        await target.persist(store)
    return False
