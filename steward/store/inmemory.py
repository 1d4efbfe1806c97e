"""In-memory implementation of the object store."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from .base import RecordKey, RecordStore


class InMemoryObjectStore(RecordStore):
    """Store objects in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are kept as JSON text so
    callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        super().__init__()
        self._records: Dict[RecordKey, str] = {}

    # ------------------------------------------------------------------
    async def _read(self, rkey: RecordKey) -> Dict[str, Any] | None:
        raw = self._records.get(rkey)
        return json.loads(raw) if raw is not None else None

    async def _write(self, rkey: RecordKey, record: Dict[str, Any]) -> None:
        self._records[rkey] = json.dumps(record)

    async def _remove(self, rkey: RecordKey) -> None:
        self._records.pop(rkey, None)

    async def _scan(
        self, kind: Optional[str] = None
    ) -> List[Tuple[RecordKey, Dict[str, Any]]]:
        return [
            (rkey, json.loads(raw))
            for rkey, raw in self._records.items()
            if kind is None or rkey[0] == kind
        ]
