"""
Client-side cache of request/response query results.

Keys are tuples whose first element names the resource, e.g.
``("/api/orders",)`` or ``("/api/orders", "motoboy", "m-1")``. Invalidating
the ``/api/orders`` prefix marks every order query stale at once, which is
what the push subscriber does for every domain event.

Stale entries keep their data, so a view can still render while a refetch
is in flight.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

logger = logging.getLogger("query_cache")

ORDERS_RESOURCE = "/api/orders"
ORDER_ITEMS_RESOURCE = "/api/order-items"

QueryKey = tuple


@dataclass
class CacheEntry:
    data: Any
    fetched_at: datetime = field(default_factory=datetime.utcnow)
    stale: bool = False


class QueryCache:
    """
    Keyed query results with prefix invalidation.

    Example:
        cache = QueryCache()
        orders = await cache.fetch(("/api/orders",), client.list_orders)
        cache.invalidate_prefix("/api/orders")   # next fetch goes to the server
    """

    def __init__(self):
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._listeners: list[Callable[[list[QueryKey]], None]] = []

    def get(self, key: QueryKey, default=None):
        entry = self._entries.get(key)
        return entry.data if entry is not None else default

    def set(self, key: QueryKey, data) -> None:
        self._entries[key] = CacheEntry(data=data)

    def is_stale(self, key: QueryKey) -> bool:
        """Missing entries count as stale."""
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def invalidate(self, predicate: Callable[[QueryKey], bool]) -> list[QueryKey]:
        """Mark every entry whose key matches ``predicate`` as stale."""
        invalidated = [key for key, entry in self._entries.items() if predicate(key)]
        for key in invalidated:
            self._entries[key].stale = True

        if invalidated:
            logger.debug(f"Invalidated {len(invalidated)} query(ies)")
            for listener in list(self._listeners):
                try:
                    listener(invalidated)
                except Exception:
                    logger.exception("Cache listener failed")
        return invalidated

    def invalidate_prefix(self, resource: str) -> list[QueryKey]:
        return self.invalidate(lambda key: bool(key) and key[0] == resource)

    def subscribe(self, listener: Callable[[list[QueryKey]], None]) -> Callable[[], None]:
        """Be told which keys were invalidated. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def fetch(self, key: QueryKey, fetcher: Callable[[], Awaitable[Any]], force: bool = False):
        """
        Return cached data if fresh, otherwise await ``fetcher`` and cache it.

        A failing fetcher propagates its exception and leaves the old entry
        (stale or not) in place.
        """
        if not force and not self.is_stale(key):
            return self._entries[key].data
        data = await fetcher()
        self.set(key, data)
        return data

    def clear(self) -> None:
        self._entries.clear()
