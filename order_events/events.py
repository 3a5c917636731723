"""
Push event definitions and their Server-Sent Events wire format.

Events are a closed set of tagged variants. Each carries only the fields its
tag needs and is decoded once, at the connection boundary, into one of the
models below. Nothing downstream handles raw dicts.

Wire format (one frame per event):

    event: order_status_changed
    data: {"orderId": "...", "status": "ready", "previousStatus": "preparing"}

Payload keys are camelCase on the wire, snake_case in Python.

Design decisions:
- Event names are the SSE ``event:`` field, so the JSON body has no type key
- Unknown event names are skipped by the decoder, not treated as errors
- Helper functions create properly structured events, like the bus helpers
"""

import json
import logging
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger("order_events")


# =============================================================================
# Event Type Constants
# =============================================================================

class EventTypes:
    """Names of every event the push stream can carry."""
    CONNECTED = "connected"
    HEARTBEAT = "heartbeat"
    ORDER_CREATED = "order_created"
    ORDER_STATUS_CHANGED = "order_status_changed"
    ORDER_ASSIGNED = "order_assigned"

    DOMAIN = frozenset({ORDER_CREATED, ORDER_STATUS_CHANGED, ORDER_ASSIGNED})
    ALL = DOMAIN | {CONNECTED, HEARTBEAT}


# =============================================================================
# Event Variants
# =============================================================================

class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Connected(_WireModel):
    """Sent once, to one connection, right after it subscribes."""
    type: Literal["connected"] = "connected"
    message: str = "Connected to order updates"


class Heartbeat(_WireModel):
    """Periodic keep-alive, unrelated to order activity."""
    type: Literal["heartbeat"] = "heartbeat"
    timestamp: int = Field(
        default_factory=lambda: int(datetime.utcnow().timestamp() * 1000),
        description="Milliseconds since the epoch",
    )


class OrderCreated(_WireModel):
    type: Literal["order_created"] = "order_created"
    order_id: str = Field(..., alias="orderId")
    status: str = "pending"


class OrderStatusChanged(_WireModel):
    type: Literal["order_status_changed"] = "order_status_changed"
    order_id: str = Field(..., alias="orderId")
    status: str
    previous_status: Optional[str] = Field(default=None, alias="previousStatus")


class OrderAssigned(_WireModel):
    type: Literal["order_assigned"] = "order_assigned"
    order_id: str = Field(..., alias="orderId")
    motoboy_id: str = Field(..., alias="motoboyId")
    status: str = "dispatched"


OrderEvent = Annotated[
    Union[Connected, Heartbeat, OrderCreated, OrderStatusChanged, OrderAssigned],
    Field(discriminator="type"),
]

DomainEvent = Union[OrderCreated, OrderStatusChanged, OrderAssigned]

_event_adapter: TypeAdapter = TypeAdapter(OrderEvent)


def is_domain_event(event) -> bool:
    return event.type in EventTypes.DOMAIN


# =============================================================================
# Event Helpers
# =============================================================================

def order_created(order_id: str, status: str = "pending") -> OrderCreated:
    """Published when a new order is placed."""
    return OrderCreated(order_id=order_id, status=status)


def order_status_changed(
    order_id: str,
    status: str,
    previous_status: Optional[str] = None,
) -> OrderStatusChanged:
    """
    Published exactly once for every successful status transition.

    Kitchen, courier and customer views all react to this one.
    """
    return OrderStatusChanged(order_id=order_id, status=status, previous_status=previous_status)


def order_assigned(order_id: str, motoboy_id: str, status: str = "dispatched") -> OrderAssigned:
    """Published when a courier takes a ready order."""
    return OrderAssigned(order_id=order_id, motoboy_id=motoboy_id, status=status)


# =============================================================================
# SSE Codec
# =============================================================================

class EventDecodeError(ValueError):
    """A frame named a known event but its data did not match the variant."""


def event_payload(event) -> dict:
    """The JSON body of an event as it goes on the wire."""
    return event.model_dump(by_alias=True, exclude={"type"}, exclude_none=True)


def encode_sse(event) -> str:
    """Encode an event as one SSE frame, terminated by a blank line."""
    data = json.dumps(event_payload(event), separators=(",", ":"))
    return f"event: {event.type}\ndata: {data}\n\n"


def decode_event(event_name: str, data: str):
    """
    Decode one SSE frame into a typed event.

    Returns None for event names outside the closed set.
    Raises EventDecodeError if the data is not valid for the named variant.
    """
    if event_name not in EventTypes.ALL:
        return None
    try:
        payload = json.loads(data) if data.strip() else {}
        if not isinstance(payload, dict):
            raise EventDecodeError(f"Expected a JSON object for '{event_name}', got {type(payload).__name__}")
        return _event_adapter.validate_python({**payload, "type": event_name})
    except (json.JSONDecodeError, ValidationError) as e:
        raise EventDecodeError(f"Invalid '{event_name}' event: {e}") from e


class SSEDecoder:
    """
    Incremental SSE parser.

    Feed it the stream one line at a time (without the trailing newline);
    it returns a typed event whenever a frame completes, otherwise None.
    Comment lines and ``id:``/``retry:`` fields are ignored. Frames that
    cannot be decoded are logged and dropped so one bad frame does not
    take the connection down.
    """

    def __init__(self):
        self._event_name = "message"
        self._data_lines: list[str] = []

    def feed(self, line: str):
        line = line.rstrip("\r")

        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_name = value
        elif field == "data":
            self._data_lines.append(value)
        return None

    def _dispatch(self):
        event_name, data_lines = self._event_name, self._data_lines
        self._event_name = "message"
        self._data_lines = []

        if not data_lines and event_name == "message":
            return None

        try:
            event = decode_event(event_name, "\n".join(data_lines))
        except EventDecodeError as e:
            logger.warning(f"Dropping undecodable frame: {e}")
            return None

        if event is None:
            logger.debug(f"Skipping unknown event '{event_name}'")
        return event
