"""
Fallback polling for order queries.

Push is the fast path; polling is the safety net for events lost while the
stream was down (or lost between persisting a change and publishing it).
The interval is 5s while the subscriber is disconnected and 30s while it is
connected, re-evaluated every cycle. An invalidation of the poller's query
key wakes it immediately, which is how a pushed event becomes a refetch.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from order_client.query_cache import QueryCache, QueryKey
from shared.config import get_settings

logger = logging.getLogger("order_poller")


class OrderPoller:
    """
    Refetches one query on a connection-aware interval.

    Example:
        poller = OrderPoller(cache, ("/api/orders",), client.list_orders,
                             is_connected=lambda: subscriber.is_connected)
        poller.start()
        ...
        await poller.stop()
    """

    def __init__(
        self,
        cache: QueryCache,
        key: QueryKey,
        fetcher: Callable[[], Awaitable[Any]],
        is_connected: Callable[[], bool],
        connected_interval: Optional[float] = None,
        disconnected_interval: Optional[float] = None,
        on_refresh: Optional[Callable[[Any], None]] = None,
    ):
        settings = get_settings()
        self.cache = cache
        self.key = key
        self.fetcher = fetcher
        self.is_connected = is_connected
        self.connected_interval = (
            settings.poll_connected if connected_interval is None else connected_interval
        )
        self.disconnected_interval = (
            settings.poll_disconnected if disconnected_interval is None else disconnected_interval
        )
        self.on_refresh = on_refresh
        self.fetch_count = 0
        self._stopping = False
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def current_interval(self) -> float:
        return self.connected_interval if self.is_connected() else self.disconnected_interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self):
        """
        Fetch now and store the result in the cache.

        Failures are logged and the previous data is returned; the next
        cycle tries again. ``on_refresh`` runs after each successful fetch.
        """
        try:
            data = await self.cache.fetch(self.key, self.fetcher, force=True)
        except Exception as e:
            logger.warning(f"Refetch of {self.key} failed: {e}")
            return self.cache.get(self.key)
        self.fetch_count += 1
        if self.on_refresh is not None:
            try:
                self.on_refresh(data)
            except Exception:
                logger.exception(f"Refresh callback for {self.key} failed")
        return data

    async def run(self) -> None:
        """Poll until stopped."""
        while not self._stopping:
            # Cleared before the fetch so a wake-up during it is not lost
            self._wake.clear()
            await self.refresh()
            if self._stopping:
                break
            await self._sleep(self.current_interval())

    async def _sleep(self, interval: float) -> None:
        waiter = asyncio.ensure_future(self._wake.wait())
        try:
            await asyncio.wait({waiter}, timeout=interval)
        finally:
            waiter.cancel()

    def _on_invalidated(self, keys: list) -> None:
        if self.key in keys and self._wake is not None:
            self._wake.set()

    def wake(self) -> None:
        """Skip the rest of the current wait and refetch."""
        if self._wake is not None:
            self._wake.set()

    def start(self) -> asyncio.Task:
        """Start polling on the running loop (idempotent)."""
        if self.running:
            return self._task
        self._stopping = False
        self._wake = asyncio.Event()
        self._unsubscribe = self.cache.subscribe(self._on_invalidated)
        self._task = asyncio.get_running_loop().create_task(self.run())
        logger.debug(f"Polling {self.key}")
        return self._task

    async def stop(self) -> None:
        """
        Cancel polling and wait for the task to end.

        A cancellation of the caller while waiting propagates as usual.
        """
        self._stopping = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Polling {self.key} ended with an error: {task.exception()!r}")
