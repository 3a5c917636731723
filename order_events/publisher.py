"""
Event publisher for live order updates.

Whenever an order is created, changes status or gets a courier, the ordering
service hands a typed event to the publisher, which pushes it to every open
connection in the subscription registry. The publisher also owns the
heartbeat that keeps idle connections (and the proxies in front of them)
alive.

Design decisions:
- Push notification, not a queue: no persistence, no replay, no retries
- A connection whose send raises is dropped and closed, the rest still get the event
- Events reach each connection in publish order; nothing is promised across connections
- publish() never raises into the command that triggered it

Key insight:
- The ordering service doesn't know who is listening
- Clients don't know which service changed the order
- A crash between persisting a change and publishing it loses the event;
  clients recover through their polling fallback
"""

import asyncio
import logging
from typing import Optional, Union

from order_events.events import Connected, Heartbeat
from order_events.registry import Connection, Subscription, SubscriptionRegistry

logger = logging.getLogger("event_publisher")


class EventPublisher:
    """
    Fans typed events out to every registered connection.

    Example usage:
        publisher = EventPublisher()
        publisher.subscribe(connection)           # connection gets "connected"
        publisher.publish(order_status_changed("ord-1", "ready", "preparing"))
        publisher.unsubscribe(connection)
    """

    def __init__(self, registry: Optional[SubscriptionRegistry] = None):
        self.registry = registry or SubscriptionRegistry()
        self._heartbeat_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, connection: Connection) -> Subscription:
        """
        Register a connection and greet it with a ``connected`` event.

        The greeting lets the client tell a fresh connection apart from a
        reconnect after a gap. If the greeting cannot be sent the connection
        is dropped straight away.
        """
        subscription = self.registry.add(connection)
        self._deliver(subscription, Connected())
        return subscription

    def unsubscribe(self, target: Union[Connection, Subscription]) -> bool:
        """
        Unregister a connection (or the connection of a subscription).

        Returns True if it was registered.
        """
        connection = target.connection if isinstance(target, Subscription) else target
        return self.registry.remove(connection)

    @property
    def connection_count(self) -> int:
        return len(self.registry)

    # =========================================================================
    # Publishing
    # =========================================================================

    def publish(self, event) -> int:
        """
        Send an event to every connection open right now.

        Args:
            event: Any event from order_events.events

        Returns:
            Number of connections that accepted the event

        Note: Connections are served in registration order. A failing
        connection is removed and closed; it never stops the others.
        """
        subscriptions = self.registry.snapshot()
        logger.info(f"Publishing {event.type} to {len(subscriptions)} connection(s)")

        delivered = 0
        for subscription in subscriptions:
            if self._deliver(subscription, event):
                delivered += 1

        if not subscriptions:
            logger.debug(f"No open connections for '{event.type}'")
        return delivered

    def _deliver(self, subscription: Subscription, event) -> bool:
        try:
            subscription.connection.send(event)
            return True
        except Exception as e:
            logger.warning(f"Dropping {subscription} after failed '{event.type}' send: {e}")
            self.registry.remove(subscription.connection)
            self._close_quietly(subscription.connection)
            return False

    @staticmethod
    def _close_quietly(connection: Connection) -> None:
        try:
            connection.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing a dropped connection: {e}")

    def close_all(self) -> int:
        """Unregister and close every connection (server shutdown)."""
        removed = self.registry.clear()
        for subscription in removed:
            self._close_quietly(subscription.connection)
        if removed:
            logger.info(f"Closed {len(removed)} connection(s)")
        return len(removed)

    # =========================================================================
    # Heartbeat
    # =========================================================================

    def send_heartbeat(self) -> int:
        """Push one heartbeat to every open connection."""
        return self.publish(Heartbeat())

    async def run_heartbeat(self, interval: float) -> None:
        """Emit a heartbeat every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.send_heartbeat()

    def start_heartbeat(self, interval: float) -> asyncio.Task:
        """
        Start the heartbeat on the running event loop.

        Calling it again while a heartbeat is running returns the running task.
        """
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            return self._heartbeat_task
        self._heartbeat_task = asyncio.get_running_loop().create_task(self.run_heartbeat(interval))
        logger.info(f"Heartbeat started ({interval:g}s interval)")
        return self._heartbeat_task

    async def stop_heartbeat(self) -> None:
        """Cancel the heartbeat task and wait for it to finish."""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        # asyncio.wait never absorbs a cancellation aimed at the caller
        await asyncio.wait({task})
        logger.info("Heartbeat stopped")


# Module-level singleton: one publisher per server process
_default_publisher: Optional[EventPublisher] = None


def get_publisher() -> EventPublisher:
    """Get the process-wide publisher."""
    global _default_publisher
    if _default_publisher is None:
        _default_publisher = EventPublisher()
    return _default_publisher


def reset_publisher() -> EventPublisher:
    """Replace the process-wide publisher with a fresh one (useful for testing)."""
    global _default_publisher
    _default_publisher = EventPublisher()
    return _default_publisher
