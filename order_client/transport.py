"""
HTTP transport for the push stream.

Opens ``GET /api/orders/sse`` with httpx, decodes the response line by line
and reports typed events to the subscriber. Each connection is one asyncio
task; its handle cancels the task.

The read timeout is twice the server's heartbeat interval. A connection that
dies without a FIN (phone switching networks, a proxy dropping idle sockets)
stops delivering heartbeats and surfaces as a ReadTimeout, which the
subscriber treats like any other failure.
"""

import asyncio
import logging
from typing import Callable, Optional

import httpx

from order_client.subscriber import StreamListener
from order_events.events import SSEDecoder
from shared.config import get_settings

logger = logging.getLogger("sse_transport")

SSE_PATH = "/api/orders/sse"


class StreamEndedError(ConnectionError):
    """The server closed the event stream."""


class HttpStreamHandle:
    """Handle for one open stream; ``close`` cancels its reader task."""

    def __init__(self, task: asyncio.Task):
        self.task = task

    def close(self) -> None:
        if not self.task.done():
            self.task.cancel()

    async def wait(self) -> None:
        """Wait for the reader task to finish (normally or cancelled)."""
        await asyncio.wait({self.task})


class HttpEventStream:
    """
    EventStream over httpx.

    Example:
        stream = HttpEventStream("http://127.0.0.1:8000")
        subscriber = OrderUpdatesSubscriber(stream, cache=cache)

    Args:
        base_url: API root
        read_timeout: Seconds without any bytes before the stream is considered dead
        client_factory: Builds the httpx.AsyncClient for each connection
                        (tests pass one backed by httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        read_timeout: Optional[float] = None,
        connect_timeout: float = 10.0,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        path: str = SSE_PATH,
    ):
        settings = get_settings()
        self.base_url = base_url or settings.base_url
        self.read_timeout = read_timeout if read_timeout is not None else settings.heartbeat_interval * 2
        self.connect_timeout = connect_timeout
        self.path = path
        self._client_factory = client_factory or self._default_client

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.connect_timeout, read=self.read_timeout),
        )

    def open(self, listener: StreamListener) -> HttpStreamHandle:
        """Start reading the stream on the running event loop."""
        task = asyncio.get_running_loop().create_task(self._pump(listener))
        return HttpStreamHandle(task)

    async def _pump(self, listener: StreamListener) -> None:
        try:
            async with self._client_factory() as client:
                async with client.stream(
                    "GET",
                    self.path,
                    headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
                ) as response:
                    response.raise_for_status()
                    logger.debug(f"Stream open ({response.status_code})")

                    decoder = SSEDecoder()
                    async for line in response.aiter_lines():
                        event = decoder.feed(line)
                        if event is not None:
                            listener.on_event(event)

            raise StreamEndedError("Server closed the order updates stream")
        except asyncio.CancelledError:
            logger.debug("Stream reader cancelled")
            raise
        except Exception as e:
            listener.on_error(e)
