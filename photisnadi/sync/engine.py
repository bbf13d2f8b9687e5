"""Sync engine: lifecycle and orchestration for all synchronized collections.

The engine owns the local store, the remote backend, one reconciler per
collection, the sync work queue and the change listener.  External callers
only ever see booleans.

Usage::

    engine = SyncEngine(settings)
    if await engine.initialize():
        ok = await engine.synchronize_all()
        await engine.start_realtime()
    ...
    await engine.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from photisnadi.config import Settings, get_settings
from photisnadi.services.local_store import LocalStore
from photisnadi.services.supabase import RemoteBackend, SupabaseRemote
from photisnadi.sync.collections import COLLECTION_REGISTRY, get_collection
from photisnadi.sync.config_loader import SyncConfig, get_sync_config, load_sync_config
from photisnadi.sync.realtime import ChangeListener
from photisnadi.sync.reconciler import CollectionReconciler
from photisnadi.sync.retry import Sleep
from photisnadi.sync.scheduler import SyncQueue

logger = logging.getLogger("photisnadi.sync.engine")


class SyncEngine:
    """Bidirectional sync between the local store and Supabase.

    Collections are reconciled in registry order: projects, tasks, rituals.
    Projects go first because tasks may reference them by ``project_id``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        remote: RemoteBackend | None = None,
        store: LocalStore | None = None,
        user_id_provider: Callable[[], str | None] | None = None,
        sync_config: SyncConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the engine (no I/O happens until ``initialize()``).

        Args:
            settings:         Process settings (defaults to ``get_settings()``).
            remote:           Remote backend; defaults to ``SupabaseRemote``.
            store:            Local store; defaults to one at ``settings.local_store_path``.
            user_id_provider: Returns the signed-in user's id, or None.
                              Defaults to ``settings.sync_user_id``.
            sync_config:      Sync tunables; defaults to the bundled YAML or
                              ``settings.sync_config_path``.
            sleep:            Backoff sleep, injectable for tests.
        """
        self._settings = settings or get_settings()
        self._remote = remote
        self._store = store
        self._user_id_provider = user_id_provider or (lambda: self._settings.sync_user_id)
        self._sync_config = sync_config
        self._sleep = sleep

        self._initialized = False
        self._reconcilers: dict[str, CollectionReconciler] = {}
        self._queue: SyncQueue | None = None
        self._listener: ChangeListener | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def realtime_active(self) -> bool:
        return self._listener is not None and self._listener.active

    @property
    def realtime_channels(self) -> list[str]:
        return self._listener.channels if self._listener else []

    @property
    def queue(self) -> SyncQueue | None:
        return self._queue

    def reconciler(self, collection: str) -> CollectionReconciler:
        """Return the reconciler for ``collection`` (only after initialize)."""
        get_collection(collection)
        return self._reconcilers[collection]

    async def initialize(self) -> bool:
        """Open the local store, connect the remote and build the reconcilers.

        Returns:
            True on success (or if already initialized); False if anything failed.
        """
        if self._initialized:
            return True
        connected = False
        try:
            config = self._sync_config or self._load_sync_config()
            if self._store is None:
                self._store = LocalStore(self._settings.local_store_path)
            if self._remote is None:
                self._remote = SupabaseRemote(self._settings)
            await self._remote.connect()
            connected = True

            policy = config.retry.to_policy()
            self._reconcilers = {}
            for name, spec in COLLECTION_REGISTRY.items():
                self._reconcilers[name] = CollectionReconciler(
                    spec,
                    self._store.open_collection(spec.table, spec.codec.model),
                    self._remote,
                    self._user_id_provider,
                    policy=policy,
                    resolve_conflicts=config.collection(name).resolve_conflicts,
                    sleep=self._sleep,
                )

            self._queue = SyncQueue(
                {name: r.synchronize for name, r in self._reconcilers.items()},
                debounce=config.realtime.debounce_seconds,
            )
            self._queue.start()
            self._listener = ChangeListener(
                self._remote,
                self._queue,
                self._user_id_provider,
                self._reconcilers,
                channel_suffix=config.realtime.channel_suffix,
            )
            self._sync_config = config
        except Exception:
            logger.exception("Failed to initialize sync engine")
            await self._release(connected)
            return False

        self._initialized = True
        logger.info("Sync engine initialized (collections=%s)", list(self._reconcilers))
        return True

    async def _release(self, connected: bool) -> None:
        """Undo a partial initialize so a retry starts clean."""
        if self._queue is not None:
            await self._queue.stop()
            self._queue = None
        self._listener = None
        self._reconcilers = {}
        if connected and self._remote is not None:
            try:
                await self._remote.close()
            except Exception as exc:
                logger.warning("Error closing remote backend: %s", exc)

    def _load_sync_config(self) -> SyncConfig:
        if self._settings.sync_config_path:
            return load_sync_config(Path(self._settings.sync_config_path))
        return get_sync_config()

    async def shutdown(self) -> None:
        """Stop realtime, stop the work queue and close the remote backend."""
        if self._listener is not None:
            await self._listener.stop()
        if self._queue is not None:
            await self._queue.stop()
        if self._remote is not None and self._initialized:
            try:
                await self._remote.close()
            except Exception as exc:
                logger.warning("Error closing remote backend: %s", exc)
        self._initialized = False
        logger.info("Sync engine shut down")

    async def __aenter__(self) -> "SyncEngine":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    async def synchronize(self, collection: str) -> bool:
        """Synchronize a single collection by table name.

        Raises:
            KeyError: If ``collection`` is not a registered collection.
        """
        get_collection(collection)
        if not self._initialized:
            return False
        return await self._reconcilers[collection].synchronize()

    async def synchronize_projects(self) -> bool:
        return await self.synchronize("projects")

    async def synchronize_tasks(self) -> bool:
        return await self.synchronize("tasks")

    async def synchronize_rituals(self) -> bool:
        return await self.synchronize("rituals")

    async def synchronize_all(self) -> bool:
        """Synchronize every collection in order; True only if all succeeded.

        A failing collection never prevents the next one from running.
        """
        if not self._initialized:
            return False

        results: dict[str, bool] = {}
        for name in COLLECTION_REGISTRY:
            results[name] = await self.synchronize(name)

        ok = all(results.values())
        logger.info("Full sync complete: %s", results)
        return ok

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def start_realtime(self) -> None:
        """(Re)subscribe to change notifications for every collection."""
        if not self._initialized or self._listener is None:
            logger.warning("Cannot start realtime sync: engine not initialized")
            return
        await self._listener.start()

    async def stop_realtime(self) -> None:
        if self._listener is not None:
            await self._listener.stop()
