"""Change-notification listener.

Keeps one server-pushed change channel per collection, scoped to the signed-in
user.  A notification carries no diff; it only means "something in this
collection changed", so the listener posts a synchronize request for that
collection onto the ``SyncQueue``.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from photisnadi.services.supabase import RemoteBackend, Subscription
from photisnadi.sync.scheduler import SyncQueue

logger = logging.getLogger("photisnadi.sync.realtime")


def channel_name(table: str, user_id: str, suffix: str = "_changes_") -> str:
    """Return the per-user change channel for ``table``."""
    return f"{table}{suffix}{user_id}"


class ChangeListener:
    """Manage the change subscriptions for every synchronized collection."""

    def __init__(
        self,
        remote: RemoteBackend,
        queue: SyncQueue,
        user_id_provider: Callable[[], str | None],
        collections: Iterable[str],
        channel_suffix: str = "_changes_",
    ) -> None:
        self._remote = remote
        self._queue = queue
        self._user_id_provider = user_id_provider
        self._collections = list(collections)
        self._channel_suffix = channel_suffix
        self._subscriptions: list[Subscription] = []
        self.notifications_received = 0

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    @property
    def channels(self) -> list[str]:
        return [s.channel for s in self._subscriptions]

    async def start(self) -> None:
        """Replace any existing subscriptions with fresh ones for the current user."""
        await self.stop()

        user_id = self._user_id_provider()
        if not user_id:
            logger.warning("Not starting change listener: no authenticated user")
            return

        for table in self._collections:
            channel = channel_name(table, user_id, self._channel_suffix)
            try:
                subscription = await self._remote.subscribe(channel, self._make_callback(table))
            except Exception as exc:
                logger.error("Failed to subscribe to %s: %s", channel, exc)
                # All or nothing: drop the channels already opened.
                await self.stop()
                return
            self._subscriptions.append(subscription)
        logger.info("Change listener subscribed to %s", self.channels)

    async def stop(self) -> None:
        """Unsubscribe every channel and forget them."""
        if not self._subscriptions:
            return
        for subscription in self._subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception as exc:
                logger.warning("Failed to unsubscribe %s: %s", subscription.channel, exc)
        logger.info("Change listener unsubscribed from %d channels", len(self._subscriptions))
        self._subscriptions.clear()

    def _make_callback(self, table: str) -> Callable[[str, str], None]:
        def _on_change(channel: str, payload: str) -> None:
            self.notifications_received += 1
            logger.debug("Change on %s (%s); requesting sync of %s", channel, payload, table)
            self._queue.request(table)

        return _on_change
