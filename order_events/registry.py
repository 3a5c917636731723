"""
Registry of open push connections.

The registry is the only shared mutable state in the notification core.
Connections arrive and leave from the event loop while commands publish from
worker threads, so every mutation takes a lock and fan-out iterates over a
snapshot. A connection dropping mid fan-out cannot make the iteration throw
or skip anyone.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import uuid4

logger = logging.getLogger("subscription_registry")


class Connection(Protocol):
    """
    What the publisher needs from a subscriber connection.

    ``send`` delivers one typed event and raises if the channel is broken.
    ``close`` must be safe to call more than once.
    """

    def send(self, event) -> None: ...

    def close(self) -> None: ...


@dataclass
class Subscription:
    """A registered connection."""
    connection: Connection
    subscription_id: str = field(default_factory=lambda: str(uuid4()))
    opened_at: datetime = field(default_factory=datetime.utcnow)

    def __str__(self) -> str:
        return f"Subscription({self.subscription_id[:8]})"


class SubscriptionRegistry:
    """
    Thread-safe set of open subscriptions, in registration order.

    Example:
        registry = SubscriptionRegistry()
        subscription = registry.add(connection)
        for sub in registry.snapshot():
            sub.connection.send(event)
        registry.remove(connection)
    """

    def __init__(self):
        self._lock = threading.Lock()
        # id(connection) -> subscription; dicts keep insertion order
        self._subscriptions: dict[int, Subscription] = {}

    def add(self, connection: Connection) -> Subscription:
        """
        Register a connection.

        Adding a connection that is already registered returns the
        existing subscription.
        """
        with self._lock:
            existing = self._subscriptions.get(id(connection))
            if existing is not None:
                return existing
            subscription = Subscription(connection=connection)
            self._subscriptions[id(connection)] = subscription
            total = len(self._subscriptions)
        logger.info(f"Registered {subscription} ({total} open)")
        return subscription

    def remove(self, connection: Connection) -> bool:
        """
        Unregister a connection.

        Returns True if it was registered, False otherwise.
        """
        with self._lock:
            subscription = self._subscriptions.pop(id(connection), None)
            total = len(self._subscriptions)
        if subscription is None:
            return False
        logger.info(f"Removed {subscription} ({total} open)")
        return True

    def snapshot(self) -> list[Subscription]:
        """Copy of the current subscriptions, safe to iterate while others change the set."""
        with self._lock:
            return list(self._subscriptions.values())

    def clear(self) -> list[Subscription]:
        """Remove everything and return what was registered."""
        with self._lock:
            removed = list(self._subscriptions.values())
            self._subscriptions.clear()
        return removed

    def __contains__(self, connection: object) -> bool:
        with self._lock:
            subscription = self._subscriptions.get(id(connection))
        return subscription is not None and subscription.connection is connection

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
