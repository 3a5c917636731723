"""
Server side of the push stream.

A StreamConnection is the registry's handle for one client's open response.
Events go into a bounded asyncio queue owned by the event loop serving that
response; ``stream_events`` drains the queue into SSE frames.

Command endpoints run in worker threads, so ``send`` may be called off the
loop. Those calls are handed over with ``call_soon_threadsafe``, which runs
callbacks in the order they were scheduled and so keeps publish order per
connection.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional
from uuid import uuid4

from order_events.events import encode_sse
from order_events.publisher import EventPublisher

logger = logging.getLogger("event_stream")

_CLOSED = object()


class ConnectionClosedError(ConnectionError):
    """Raised when sending to a connection that has already closed."""


class StreamConnection:
    """
    One client's push channel.

    Must be created on the event loop that will serve the response.
    """

    def __init__(self, max_queue_size: int = 100, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.connection_id = str(uuid4())
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def send(self, event) -> None:
        """
        Queue an event for this client.

        Raises ConnectionClosedError once closed and asyncio.QueueFull when a
        slow client has fallen too far behind. Off-loop sends report a full
        queue by closing the connection instead, since the caller has moved on.
        """
        if self._closed:
            raise ConnectionClosedError(f"Stream {self.connection_id[:8]} is closed")
        if self._on_loop_thread():
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._enqueue_from_thread, event)

    def _enqueue_from_thread(self, event) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Stream {self.connection_id[:8]} fell behind, closing it")
            self._close_on_loop()

    def close(self) -> None:
        """Stop the stream. Safe to call repeatedly and from any thread."""
        if self._closed:
            return
        self._closed = True
        if self._on_loop_thread():
            self._close_on_loop()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._close_on_loop)

    def _close_on_loop(self) -> None:
        self._closed = True
        # Pending events are dropped; the reader only needs the wake-up
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def next_event(self):
        """Wait for the next event; None once the connection has closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item


async def stream_events(connection: StreamConnection, publisher: EventPublisher) -> AsyncIterator[str]:
    """
    Subscribe a connection and yield its SSE frames until it closes.

    The subscription is made when the body starts streaming, so a response
    that is dropped before its first frame never registers. However the
    stream ends (client gone, connection dropped, server shutdown) the
    connection is unregistered and closed.
    """
    try:
        subscription = publisher.subscribe(connection)
        logger.info(f"Client subscribed ({subscription}), {publisher.connection_count} open")
        while True:
            event = await connection.next_event()
            if event is None:
                break
            yield encode_sse(event)
    finally:
        publisher.unsubscribe(connection)
        connection.close()
        logger.info(f"Stream {connection.connection_id[:8]} finished")
