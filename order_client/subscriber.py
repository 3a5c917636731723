"""
Client side of the live order stream.

OrderUpdatesSubscriber keeps one push connection open to the server, turns
incoming events into cache invalidations plus role callbacks, and reconnects
with exponential backoff when the connection drops.

State machine:

    disconnected --connect()--> connecting --"connected"--> connected
         ^                           |                          |
         +-------- error ------------+---------- error ---------+
         |
         +-- scheduled reconnect (1s, 2s, 4s ... 30s, at most 10 times)

Design decisions:
- The transport is injected; the subscriber never touches sockets or HTTP
- One connection at a time: connect() while connecting/connected is a no-op
- Every connection gets a generation number; callbacks from a superseded
  connection are ignored, so a late error can't tear down its replacement
- Cache invalidation happens BEFORE the role callback, so a callback that
  reads the cache sees the entry as stale
- Callback exceptions are logged and never reach the connection

Key insight:
- The subscriber does not decide what a view shows. It only tells the
  cache "orders changed" and lets each role decide what to do about it.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol

from order_client.query_cache import ORDERS_RESOURCE, QueryCache
from order_client.scheduler import ReconnectScheduler, reconnect_delay
from order_events.events import EventTypes, OrderAssigned, OrderCreated, OrderStatusChanged
from shared.config import get_settings

logger = logging.getLogger("order_subscriber")


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# =============================================================================
# Transport contract
# =============================================================================

class StreamListener(Protocol):
    """What a transport reports back for one connection."""

    def on_event(self, event) -> None: ...

    def on_error(self, error: Exception) -> None: ...


class StreamHandle(Protocol):
    def close(self) -> None: ...


class EventStream(Protocol):
    """
    Opens push connections.

    ``open`` starts a connection and returns a handle for closing it.
    Decoded events and the (single) terminal error are reported to the
    listener; end of stream counts as an error.
    """

    def open(self, listener: StreamListener) -> StreamHandle: ...


class _GenerationListener:
    """Routes transport callbacks to the subscriber, tagged with a generation."""

    def __init__(self, subscriber: "OrderUpdatesSubscriber", generation: int):
        self._subscriber = subscriber
        self._generation = generation

    def on_event(self, event) -> None:
        self._subscriber._handle_event(self._generation, event)

    def on_error(self, error: Exception) -> None:
        self._subscriber._handle_error(self._generation, error)


# =============================================================================
# Subscriber
# =============================================================================

class OrderUpdatesSubscriber:
    """
    Keeps a client view in sync with server-side order changes.

    Example usage:
        subscriber = OrderUpdatesSubscriber(
            HttpEventStream(settings.base_url),
            cache=cache,
            on_order_created=lambda event: print("new order", event.order_id),
        )
        with subscriber:
            ...   # connected (or reconnecting) until the block exits
    """

    def __init__(
        self,
        stream: EventStream,
        cache: Optional[QueryCache] = None,
        on_connected: Optional[Callable[[], None]] = None,
        on_disconnected: Optional[Callable[[], None]] = None,
        on_order_created: Optional[Callable[[OrderCreated], None]] = None,
        on_order_status_changed: Optional[Callable[[OrderStatusChanged], None]] = None,
        on_order_assigned: Optional[Callable[[OrderAssigned], None]] = None,
        scheduler: Optional[ReconnectScheduler] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        invalidate_prefixes: Iterable[str] = (ORDERS_RESOURCE,),
    ):
        settings = get_settings()
        self.stream = stream
        self.cache = cache if cache is not None else QueryCache()
        self.scheduler = scheduler or ReconnectScheduler()
        self.base_delay = settings.reconnect_base_delay if base_delay is None else base_delay
        self.max_delay = settings.reconnect_max_delay if max_delay is None else max_delay
        self.max_attempts = settings.max_reconnect_attempts if max_attempts is None else max_attempts
        self.invalidate_prefixes = tuple(invalidate_prefixes)

        self.on_connected = on_connected
        self.on_disconnected = on_disconnected
        self._domain_callbacks = {
            EventTypes.ORDER_CREATED: on_order_created,
            EventTypes.ORDER_STATUS_CHANGED: on_order_status_changed,
            EventTypes.ORDER_ASSIGNED: on_order_assigned,
        }

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.last_heartbeat_at: Optional[datetime] = None
        self._generation = 0
        self._handle: Optional[StreamHandle] = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def gave_up(self) -> bool:
        """True once automatic reconnection is exhausted."""
        return (
            self.state == ConnectionState.DISCONNECTED
            and not self.scheduler.pending
            and self.attempts >= self.max_attempts
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def connect(self) -> None:
        """Open the push connection unless one is already open or opening."""
        if self.state != ConnectionState.DISCONNECTED:
            logger.debug(f"connect() ignored while {self.state.value}")
            return

        self.scheduler.cancel()
        self._generation += 1
        generation = self._generation
        self.state = ConnectionState.CONNECTING
        logger.info(f"Connecting to order updates (attempt {self.attempts + 1})")

        try:
            handle = self.stream.open(_GenerationListener(self, generation))
        except Exception as e:
            self._handle_error(generation, e)
            return

        # The transport may have reported an error while opening
        if generation == self._generation and self.state != ConnectionState.DISCONNECTED:
            self._handle = handle
        else:
            self._close_quietly(handle)

    def reconnect(self) -> None:
        """
        Manual reconnect.

        Skips any pending backoff timer and connects right away. Works after
        automatic reconnection has given up; the attempt counter is only
        reset by a successful ``connected`` event.
        """
        self.scheduler.cancel()
        self.connect()

    def disconnect(self) -> None:
        """Close the connection and cancel any pending reconnect. Always safe."""
        self.scheduler.cancel()
        # Outstanding callbacks from the old connection become stale
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is not None:
            self._close_quietly(handle)
        if self.state != ConnectionState.DISCONNECTED:
            logger.info("Disconnected from order updates")
        self.state = ConnectionState.DISCONNECTED

    close = disconnect

    def __enter__(self) -> "OrderUpdatesSubscriber":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # =========================================================================
    # Transport callbacks
    # =========================================================================

    def _handle_event(self, generation: int, event) -> None:
        if generation != self._generation:
            logger.debug(f"Ignoring '{event.type}' from a superseded connection")
            return

        if event.type == EventTypes.CONNECTED:
            self.attempts = 0
            self.state = ConnectionState.CONNECTED
            logger.info("Connected to order updates")
            self._safe_call(self.on_connected)
        elif event.type == EventTypes.HEARTBEAT:
            self.last_heartbeat_at = datetime.utcnow()
        elif event.type in EventTypes.DOMAIN:
            for prefix in self.invalidate_prefixes:
                self.cache.invalidate_prefix(prefix)
            self._safe_call(self._domain_callbacks.get(event.type), event)
        else:
            logger.debug(f"Ignoring unexpected event '{event.type}'")

    def _handle_error(self, generation: int, error: Exception) -> None:
        if generation != self._generation or self.state == ConnectionState.DISCONNECTED:
            return

        handle, self._handle = self._handle, None
        if handle is not None:
            self._close_quietly(handle)
        self.state = ConnectionState.DISCONNECTED
        logger.warning(f"Order updates connection lost: {error}")
        self._safe_call(self.on_disconnected)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self.state != ConnectionState.DISCONNECTED:
            # on_disconnected reconnected by hand
            return
        if self.attempts >= self.max_attempts:
            logger.error(
                f"Giving up on order updates after {self.attempts} reconnect attempts; "
                f"relying on polling until reconnect() is called"
            )
            return

        delay = reconnect_delay(self.attempts, self.base_delay, self.max_delay)
        self.attempts += 1
        logger.info(f"Reconnecting in {delay:g}s (attempt {self.attempts}/{self.max_attempts})")
        self.scheduler.schedule(delay, self.connect)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _safe_call(callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Order update callback failed")

    @staticmethod
    def _close_quietly(handle: StreamHandle) -> None:
        try:
            handle.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing stream: {e}")
