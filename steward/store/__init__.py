"""Backing stores for steward objects."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StewardConfig, load_config
from .base import ObjectStore, RecordStore
from .enqueue import EnqueueingStore
from .inmemory import InMemoryObjectStore
from .sqlite import SQLiteObjectStore

_store_instance: ObjectStore | None = None


def get_store(
    database_url: Optional[str] = None, config: Optional[StewardConfig] = None
) -> ObjectStore:
    """Factory function to obtain an object store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``STEWARD_DATABASE_URL``, or from
    loaded configuration. When no database is configured, an in-memory store
    is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("STEWARD_DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _store_instance = InMemoryObjectStore()
    elif database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _store_instance = SQLiteObjectStore(path)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "EnqueueingStore",
    "InMemoryObjectStore",
    "ObjectStore",
    "RecordStore",
    "SQLiteObjectStore",
    "get_store",
]
