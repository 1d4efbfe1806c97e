"""SQLite implementation of the object store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import RecordKey, RecordStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS objects (
    kind TEXT NOT NULL,
    namespace TEXT NOT NULL,
    name TEXT NOT NULL,
    body TEXT NOT NULL,
    PRIMARY KEY (kind, namespace, name)
)
"""

_KEY_MATCH = "kind = ? AND namespace = ? AND name = ?"


class SQLiteObjectStore(RecordStore):
    """Objects kept as JSON bodies in one table keyed by kind, namespace and name.

    sqlite3 calls run in a worker thread so the event loop is never blocked.
    Every statement commits on its own; the store lock serializes writers.
    """

    def __init__(self, db_path: str | Path):
        super().__init__()
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    def _run(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._conn:
            return self._conn.execute(sql, params).fetchall()

    async def _query(self, sql: str, *params: Any) -> List[sqlite3.Row]:
        return await asyncio.to_thread(self._run, sql, params)

    async def _read(self, rkey: RecordKey) -> Dict[str, Any] | None:
        rows = await self._query(f"SELECT body FROM objects WHERE {_KEY_MATCH}", *rkey)
        return json.loads(rows[0]["body"]) if rows else None

    async def _write(self, rkey: RecordKey, record: Dict[str, Any]) -> None:
        await self._query(
            "INSERT INTO objects (kind, namespace, name, body) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (kind, namespace, name) DO UPDATE SET body = excluded.body",
            *rkey,
            json.dumps(record),
        )

    async def _remove(self, rkey: RecordKey) -> None:
        await self._query(f"DELETE FROM objects WHERE {_KEY_MATCH}", *rkey)

    async def _scan(
        self, kind: Optional[str] = None
    ) -> List[Tuple[RecordKey, Dict[str, Any]]]:
        sql = "SELECT kind, namespace, name, body FROM objects"
        params: Tuple[Any, ...] = ()
        if kind is not None:
            sql += " WHERE kind = ?"
            params = (kind,)
        rows = await self._query(sql + " ORDER BY kind, namespace, name", *params)
        return [
            ((row["kind"], row["namespace"], row["name"]), json.loads(row["body"]))
            for row in rows
        ]
