"""Supabase Postgres backend for the sync engine.

Uses ``asyncpg`` for direct database access: rows are selected as ``jsonb``
so the engine works on plain JSON-shaped dicts, and writes go through
``jsonb_populate_record`` so the same dicts can be upserted unchanged.

Change notifications use ``LISTEN`` on a dedicated connection.  The server
side is a trigger per synchronized table, e.g.::

    CREATE OR REPLACE FUNCTION notify_row_change() RETURNS trigger AS $$
    BEGIN
        PERFORM pg_notify(
            TG_TABLE_NAME || '_changes_' || COALESCE(NEW.user_id, OLD.user_id),
            TG_OP
        );
        RETURN NULL;
    END;
    $$ LANGUAGE plpgsql;

    CREATE TRIGGER tasks_notify AFTER INSERT OR UPDATE OR DELETE ON tasks
        FOR EACH ROW EXECUTE FUNCTION notify_row_change();

Channels are per table and per user, so filtering happens server-side.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Protocol

import asyncpg

from photisnadi.config import Settings, get_settings

logger = logging.getLogger("photisnadi.db")

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

ChangeCallback = Callable[[str, str], None]


class Subscription(Protocol):
    """Handle for one live change channel."""

    channel: str

    async def unsubscribe(self) -> None: ...


class RemoteBackend(Protocol):
    """Operations the sync engine needs from the remote store."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def fetch_rows(self, table: str, user_id: str) -> list[dict[str, Any]]: ...

    async def upsert_row(self, table: str, columns: tuple[str, ...], row: dict[str, Any]) -> None: ...

    async def subscribe(self, channel: str, callback: ChangeCallback) -> Subscription: ...


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def build_select_query(table: str) -> str:
    """Select every row of ``table`` owned by ``$1`` as a jsonb object."""
    _check_identifier(table)
    return f"SELECT to_jsonb(t) AS data FROM {table} t WHERE t.user_id = $1"


def build_upsert_query(
    table: str,
    columns: tuple[str, ...] | list[str],
    conflict_columns: tuple[str, ...] | list[str] = ("id",),
) -> str:
    """Build an ``INSERT ... ON CONFLICT DO UPDATE`` that takes a jsonb row in ``$1``.

    Every non-key column is overwritten on conflict (full-row replace), so the
    write is idempotent.

    Args:
        table:            Target table name.
        columns:          All columns to write, in row order.
        conflict_columns: Columns of the primary key / UNIQUE constraint.

    Returns:
        Parameterized SQL string.
    """
    _check_identifier(table)
    for col in (*columns, *conflict_columns):
        _check_identifier(col)

    update_columns = [c for c in columns if c not in conflict_columns]
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    if update_columns:
        update_set = ", ".join(f"{col} = EXCLUDED.{col}" for col in update_columns)
        do_clause = f"DO UPDATE SET {update_set}"
    else:
        do_clause = "DO NOTHING"

    return (
        f"INSERT INTO {table} ({col_list}) "
        f"SELECT {col_list} FROM jsonb_populate_record(NULL::{table}, $1::jsonb) "
        f"ON CONFLICT ({conflict_target}) {do_clause}"
    )


class _ListenerSubscription:
    def __init__(self, conn: asyncpg.Connection, channel: str, listener: Callable) -> None:
        self._conn = conn
        self.channel = channel
        self._listener = listener

    async def unsubscribe(self) -> None:
        if self._conn.is_closed():
            return
        await self._conn.remove_listener(self.channel, self._listener)


class SupabaseRemote:
    """asyncpg-backed ``RemoteBackend`` for the Supabase Postgres database."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: asyncpg.Pool | None = None
        self._listen_conn: asyncpg.Connection | None = None

    async def connect(self) -> None:
        """Create the connection pool. Call once at engine startup."""
        s = self._settings
        self._pool = await asyncpg.create_pool(
            s.supabase_db_url,
            min_size=s.db_pool_min_size,
            max_size=s.db_pool_max_size,
            command_timeout=s.db_command_timeout,
        )
        logger.info(
            "Database pool initialized (min=%d, max=%d)",
            s.db_pool_min_size,
            s.db_pool_max_size,
        )

    async def close(self) -> None:
        """Close the listen connection and drain the pool."""
        if self._listen_conn is not None:
            await self._listen_conn.close()
            self._listen_conn = None
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not initialized — call connect() first")
        return self._pool

    async def fetch_rows(self, table: str, user_id: str) -> list[dict[str, Any]]:
        """Return every row of ``table`` owned by ``user_id`` as a dict."""
        async with self._get_pool().acquire() as conn:
            records = await conn.fetch(build_select_query(table), user_id)
        return [json.loads(r["data"]) for r in records]

    async def upsert_row(self, table: str, columns: tuple[str, ...], row: dict[str, Any]) -> None:
        """Insert or fully replace one row, keyed by ``id``."""
        query = build_upsert_query(table, columns)
        async with self._get_pool().acquire() as conn:
            await conn.execute(query, json.dumps(row))

    async def subscribe(self, channel: str, callback: ChangeCallback) -> Subscription:
        """LISTEN on ``channel``; ``callback(channel, payload)`` runs per notification."""
        if self._listen_conn is None or self._listen_conn.is_closed():
            self._listen_conn = await asyncpg.connect(self._settings.supabase_db_url)

        def _listener(
            conn: asyncpg.Connection, pid: int, channel_name: str, payload: str
        ) -> None:
            callback(channel_name, payload)

        await self._listen_conn.add_listener(channel, _listener)
        logger.debug("Listening on %s", channel)
        return _ListenerSubscription(self._listen_conn, channel, _listener)
