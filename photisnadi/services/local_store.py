"""Local embedded store for synchronized entities.

One SQLite file, one table per collection, each a plain key-value mapping::

    CREATE TABLE tasks (id TEXT PRIMARY KEY, value TEXT NOT NULL, stored_at REAL NOT NULL)

``value`` holds the entity's pydantic JSON dump.  Every put is a single
``INSERT ... ON CONFLICT(id) DO UPDATE`` in its own transaction, so concurrent
sync runs can interleave at record granularity without corrupting a row.

SQLite work is blocking; the async collection API hands it to a worker
thread so callers suspend on local I/O just like on network I/O.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import sqlite3
import time
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel

logger = logging.getLogger("photisnadi.local_store")

E = TypeVar("E", bound=BaseModel)

_COLLECTION_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")


class LocalStore:
    """SQLite-backed key-value store holding one table per collection.

    Each operation opens its own connection, so the store is safe to use
    from worker threads.
    """

    def __init__(self, db_path: str | Path = "photisnadi.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._collections: set[str] = set()
        logger.info("LocalStore ready db=%s", self._db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def open_collection(self, name: str, model: type[E]) -> "LocalCollection[E]":
        """Create the collection's table if missing and return a handle to it."""
        if not _COLLECTION_NAME.match(name):
            raise ValueError(f"Invalid collection name: {name!r}")
        conn = self._get_conn()
        try:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {name} ("
                "id TEXT PRIMARY KEY, value TEXT NOT NULL, stored_at REAL NOT NULL)"
            )
            conn.commit()
        finally:
            conn.close()
        self._collections.add(name)
        return LocalCollection(self, name, model)

    @property
    def collections(self) -> list[str]:
        return sorted(self._collections)

    # ---- blocking primitives (run in worker threads) ----

    def _put(self, table: str, key: str, value: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO {table} (id, value, stored_at) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET value = excluded.value, "
                "stored_at = excluded.stored_at",
                (key, value, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def _get(self, table: str, key: str) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute(f"SELECT value FROM {table} WHERE id = ?", (key,)).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _items(self, table: str) -> list[tuple[str, str]]:
        conn = self._get_conn()
        try:
            return [
                (row[0], row[1])
                for row in conn.execute(f"SELECT id, value FROM {table} ORDER BY id")
            ]
        finally:
            conn.close()


class LocalCollection(Generic[E]):
    """Async handle to one collection of a ``LocalStore``."""

    def __init__(self, store: LocalStore, name: str, model: type[E]) -> None:
        self._store = store
        self.name = name
        self.model = model

    async def put(self, key: str, record: E) -> None:
        await asyncio.to_thread(self._store._put, self.name, key, record.model_dump_json())

    async def get(self, key: str) -> E | None:
        raw = await asyncio.to_thread(self._store._get, self.name, key)
        return self.model.model_validate_json(raw) if raw is not None else None

    async def values(self) -> list[E]:
        """Return every stored record; unreadable rows are logged and skipped."""
        records: list[E] = []
        for key, raw in await asyncio.to_thread(self._store._items, self.name):
            try:
                records.append(self.model.model_validate_json(raw))
            except ValueError as exc:
                logger.warning("Skipping unreadable %s record %s: %s", self.name, key, exc)
        return records

    async def snapshot(self) -> dict[str, str]:
        """Return the raw stored JSON keyed by id."""
        return dict(await asyncio.to_thread(self._store._items, self.name))

    async def count(self) -> int:
        return len(await self.snapshot())
