"""
Shared pytest fixtures for the delivery orders tests.

These fixtures provide consistent test data, fakes for connections,
transports and timers, and reset process-wide state between tests.
"""

import pytest
from pathlib import Path

from order_client.scheduler import ReconnectScheduler
from order_events.publisher import EventPublisher
from order_events.services.ordering import OrderingService
from shared.config import reset_settings
from shared.data_store import OrderStore


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from default settings, whatever the environment says."""
    for name in (
        "ORDERS_DATA_DIR",
        "ORDERS_HEARTBEAT_INTERVAL",
        "ORDERS_STRICT_TRANSITIONS",
        "ORDERS_FALLBACK_DELIVERY_FEE",
        "ORDERS_STREAM_QUEUE_SIZE",
        "ORDERS_BASE_URL",
        "ORDERS_RECONNECT_BASE_DELAY",
        "ORDERS_RECONNECT_MAX_DELAY",
        "ORDERS_MAX_RECONNECT_ATTEMPTS",
        "ORDERS_POLL_CONNECTED",
        "ORDERS_POLL_DISCONNECTED",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = reset_settings()
    yield settings
    reset_settings()


@pytest.fixture
def data_dir() -> Path:
    """Path to the JSON fixtures."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def order_store(data_dir: Path) -> OrderStore:
    """
    Fresh OrderStore for each test.

    Uses the real JSON fixtures; writes stay in memory, so tests
    don't interfere with each other.
    """
    return OrderStore(data_dir=data_dir)


@pytest.fixture
def publisher() -> EventPublisher:
    """Fresh publisher with an empty registry."""
    return EventPublisher()


@pytest.fixture
def ordering_service(order_store: OrderStore, publisher: EventPublisher) -> OrderingService:
    """Ordering service with strict transitions."""
    return OrderingService(publisher=publisher, store=order_store, strict_transitions=True)


# =============================================================================
# Connection Fakes
# =============================================================================

class RecordingConnection:
    """Connection that records every event it is sent."""

    def __init__(self, name: str = "conn"):
        self.name = name
        self.events = []
        self.close_calls = 0

    def send(self, event) -> None:
        self.events.append(event)

    def close(self) -> None:
        self.close_calls += 1

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]

    def domain_events(self) -> list:
        return [event for event in self.events if event.type not in ("connected", "heartbeat")]


class BrokenConnection(RecordingConnection):
    """Connection whose send always fails, like a client that went away."""

    def send(self, event) -> None:
        raise ConnectionResetError("client went away")


@pytest.fixture
def make_connection():
    """Factory for recording connections."""
    return RecordingConnection


@pytest.fixture
def make_broken_connection():
    """Factory for connections whose send raises."""
    return BrokenConnection


# =============================================================================
# Client Fakes
# =============================================================================

class FakeTimer:
    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimers:
    """Timer factory that only fires when the test says so."""

    def __init__(self):
        self.created: list[FakeTimer] = []

    def __call__(self, delay: float, callback) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.created.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.created if not t.cancelled and t.callback is not None]

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.created]

    def fire_next(self) -> float:
        timer = self.pending[0]
        callback, timer.callback = timer.callback, None
        callback()
        return timer.delay


class FakeStreamHandle:
    def __init__(self):
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeEventStream:
    """Transport fake: the test pushes events and errors by hand."""

    def __init__(self, fail_on_open: bool = False):
        self.fail_on_open = fail_on_open
        self.opened: list[tuple] = []  # (listener, handle)

    def open(self, listener) -> FakeStreamHandle:
        handle = FakeStreamHandle()
        self.opened.append((listener, handle))
        if self.fail_on_open:
            listener.on_error(ConnectionRefusedError("connection refused"))
        return handle

    @property
    def open_count(self) -> int:
        return len(self.opened)

    @property
    def listener(self):
        return self.opened[-1][0]

    @property
    def handle(self) -> FakeStreamHandle:
        return self.opened[-1][1]

    def emit(self, event, index: int = -1) -> None:
        self.opened[index][0].on_event(event)

    def fail(self, error: Exception = None, index: int = -1) -> None:
        self.opened[index][0].on_error(error or ConnectionResetError("stream dropped"))


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def scheduler(timers: FakeTimers) -> ReconnectScheduler:
    return ReconnectScheduler(call_later=timers)


@pytest.fixture
def event_stream() -> FakeEventStream:
    return FakeEventStream()


@pytest.fixture
def failing_event_stream() -> FakeEventStream:
    return FakeEventStream(fail_on_open=True)


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture
def pending_order_id() -> str:
    """Ana's delivery order to Vila da Saude, still pending (6 beers)."""
    return "ord-001"


@pytest.fixture
def ready_order_id() -> str:
    """Bruno's delivery order, ready and waiting for a courier."""
    return "ord-002"


@pytest.fixture
def dispatched_order_id() -> str:
    """Ana's second order, out with courier moto-001."""
    return "ord-003"


@pytest.fixture
def counter_order_id() -> str:
    """Counter order, already accepted."""
    return "ord-004"


@pytest.fixture
def active_motoboy_id() -> str:
    return "moto-001"


@pytest.fixture
def inactive_motoboy_id() -> str:
    return "moto-002"
