"""Per-collection sync work queue.

Change notifications post synchronize requests here instead of calling the
reconciler directly.  Each collection gets one worker and a queue of size
one, which gives these guarantees:

1. At most one synchronize per collection runs from this queue at a time.
2. A request arriving during a run queues exactly one follow-up run.
3. Further requests while a follow-up is pending are coalesced (dropped).
4. An optional debounce before each run lets a burst settle first.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

logger = logging.getLogger("photisnadi.sync.scheduler")

SyncHandler = Callable[[], Awaitable[bool]]


@dataclass
class SyncRun:
    """Result of a single queued synchronize run.

    Attributes:
        collection:  Collection table name.
        success:     The reconciler's boolean outcome (False on exception).
        error:       Error message if the handler raised.
        finished_at: UTC timestamp of completion.
    """

    collection: str
    success: bool
    error: str | None = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SyncQueue:
    """Coalescing per-collection work queue.

    Usage::

        queue = SyncQueue({"tasks": engine.synchronize_tasks}, debounce=0.25)
        queue.start()
        queue.request("tasks")
        await queue.drain()
        await queue.stop()
    """

    def __init__(self, handlers: dict[str, SyncHandler], debounce: float = 0.0) -> None:
        """Initialize the queue.

        Args:
            handlers: Collection name → async callable returning the sync outcome.
            debounce: Seconds to wait before each run.
        """
        self._handlers = dict(handlers)
        self._debounce = debounce
        self._queues: dict[str, asyncio.Queue[None]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self.last_results: dict[str, SyncRun] = {}
        self.coalesced = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Spawn one worker per collection. Must be called from a running loop."""
        if self._workers:
            return
        for name in self._handlers:
            self._queues[name] = asyncio.Queue(maxsize=1)
            self._workers[name] = asyncio.create_task(
                self._worker(name), name=f"sync-queue-{name}"
            )
        logger.debug("SyncQueue started for %s", list(self._handlers))

    def request(self, collection: str) -> bool:
        """Ask for a synchronize of ``collection``.

        Returns:
            True if a run was queued, False if it was coalesced into a
            pending one or the queue is not running.

        Raises:
            KeyError: If the collection has no handler.
        """
        if collection not in self._handlers:
            raise KeyError(f"No sync handler for collection '{collection}'")
        queue = self._queues.get(collection)
        if queue is None:
            logger.debug("SyncQueue not running; dropping request for %s", collection)
            return False
        try:
            queue.put_nowait(None)
        except asyncio.QueueFull:
            self.coalesced += 1
            logger.debug("Coalesced sync request for %s", collection)
            return False
        logger.debug("Queued sync request for %s", collection)
        return True

    async def drain(self) -> None:
        """Wait until every queued request has been processed."""
        await asyncio.gather(*(q.join() for q in self._queues.values()))

    async def stop(self) -> None:
        """Cancel the workers; pending requests are discarded."""
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        logger.debug("SyncQueue stopped")

    async def _worker(self, name: str) -> None:
        queue = self._queues[name]
        handler = self._handlers[name]
        while True:
            await queue.get()
            try:
                if self._debounce > 0:
                    await asyncio.sleep(self._debounce)
                    # Requests that arrived while settling are covered by this run.
                    while not queue.empty():
                        queue.get_nowait()
                        queue.task_done()
                        self.coalesced += 1
                run = await self._run(name, handler)
                self.last_results[name] = run
            finally:
                queue.task_done()

    async def _run(self, name: str, handler: SyncHandler) -> SyncRun:
        try:
            success = await handler()
        except Exception as exc:
            logger.error("Queued sync of %s failed with exception: %s", name, exc)
            return SyncRun(collection=name, success=False, error=str(exc))
        logger.info("Queued sync of %s complete: success=%s", name, success)
        return SyncRun(collection=name, success=success)
