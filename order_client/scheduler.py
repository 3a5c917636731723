"""
Reconnect timing for the client subscriber.

The subscriber never juggles raw timers: it owns one ReconnectScheduler,
which holds at most one pending timer. Scheduling replaces whatever was
pending and cancelling clears the slot, so a torn-down view cannot leak a
timer that later reopens a connection.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger("reconnect_scheduler")


def reconnect_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """
    Exponential backoff: ``min(base_delay * 2**attempt, max_delay)`` seconds.

    attempt 0 -> 1s, 1 -> 2s, 2 -> 4s ... capped at 30s with the defaults.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # Cap the exponent so huge attempt numbers don't build enormous ints
    return min(base_delay * (2 ** min(attempt, 32)), max_delay)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


# (delay_seconds, callback) -> handle
TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


class AsyncioTimerFactory:
    """Timers on an asyncio loop (the running loop unless one is given)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def __call__(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class ReconnectScheduler:
    """
    A single pending-timer slot.

    Example:
        scheduler = ReconnectScheduler()
        scheduler.schedule(2.0, subscriber.connect)
        scheduler.cancel()          # nothing fires
    """

    def __init__(self, call_later: Optional[TimerFactory] = None):
        self._call_later = call_later or AsyncioTimerFactory()
        self._handle: Optional[TimerHandle] = None
        self.pending_delay: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` after ``delay`` seconds, replacing any pending timer."""
        self.cancel()

        def fire():
            # Clear the slot first so the callback may schedule again
            self._handle = None
            self.pending_delay = None
            callback()

        self._handle = self._call_later(delay, fire)
        self.pending_delay = delay
        logger.debug(f"Timer set for {delay:g}s")

    def cancel(self) -> bool:
        """Clear the slot. Returns True if a timer was pending."""
        handle, self._handle = self._handle, None
        self.pending_delay = None
        if handle is None:
            return False
        handle.cancel()
        return True
