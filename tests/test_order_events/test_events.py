"""
Tests for push event types and their SSE wire format.
"""

import json
import pytest

from order_events.events import (
    Connected,
    EventDecodeError,
    EventTypes,
    Heartbeat,
    OrderAssigned,
    OrderStatusChanged,
    SSEDecoder,
    decode_event,
    encode_sse,
    event_payload,
    is_domain_event,
    order_assigned,
    order_created,
    order_status_changed,
)


class TestEventHelpers:
    """Tests for event construction helpers."""

    def test_order_created(self):
        event = order_created("ord-1")

        assert event.type == EventTypes.ORDER_CREATED
        assert event.order_id == "ord-1"
        assert event.status == "pending"

    def test_order_status_changed(self):
        event = order_status_changed("ord-1", "ready", "preparing")

        assert event.type == EventTypes.ORDER_STATUS_CHANGED
        assert event.status == "ready"
        assert event.previous_status == "preparing"

    def test_order_assigned_defaults_to_dispatched(self):
        event = order_assigned("ord-1", "moto-1")

        assert event.motoboy_id == "moto-1"
        assert event.status == "dispatched"

    def test_domain_events(self):
        assert is_domain_event(order_created("ord-1"))
        assert not is_domain_event(Connected())
        assert not is_domain_event(Heartbeat())

    def test_events_are_immutable(self):
        event = order_created("ord-1")
        with pytest.raises(Exception):
            event.status = "ready"


class TestEncoding:
    """Tests for the wire encoding."""

    def test_payload_uses_camel_case(self):
        payload = event_payload(order_status_changed("ord-1", "ready", "preparing"))
        assert payload == {"orderId": "ord-1", "status": "ready", "previousStatus": "preparing"}

    def test_payload_omits_missing_previous_status(self):
        payload = event_payload(order_status_changed("ord-1", "ready"))
        assert "previousStatus" not in payload

    def test_assigned_payload(self):
        payload = event_payload(order_assigned("ord-1", "moto-1"))
        assert payload == {"orderId": "ord-1", "motoboyId": "moto-1", "status": "dispatched"}

    def test_encode_sse_frame(self):
        frame = encode_sse(order_created("ord-1"))

        lines = frame.split("\n")
        assert lines[0] == "event: order_created"
        assert lines[1].startswith("data: ")
        assert json.loads(lines[1][len("data: "):]) == {"orderId": "ord-1", "status": "pending"}
        assert frame.endswith("\n\n")

    def test_heartbeat_carries_millisecond_timestamp(self):
        frame = encode_sse(Heartbeat(timestamp=1700000000000))
        assert 'data: {"timestamp":1700000000000}' in frame


class TestDecoding:
    """Tests for decode_event."""

    def test_decode_status_change(self):
        event = decode_event("order_status_changed", '{"orderId":"ord-1","status":"arrived","previousStatus":"dispatched"}')

        assert isinstance(event, OrderStatusChanged)
        assert event.order_id == "ord-1"
        assert event.previous_status == "dispatched"

    def test_decode_assigned(self):
        event = decode_event("order_assigned", '{"orderId":"ord-1","motoboyId":"moto-1","status":"dispatched"}')
        assert isinstance(event, OrderAssigned)

    def test_unknown_event_name_is_skipped(self):
        assert decode_event("price_changed", '{"x":1}') is None

    def test_missing_field_is_an_error(self):
        with pytest.raises(EventDecodeError):
            decode_event("order_assigned", '{"orderId":"ord-1"}')

    def test_bad_json_is_an_error(self):
        with pytest.raises(EventDecodeError):
            decode_event("order_created", "{not json")

    def test_non_object_is_an_error(self):
        with pytest.raises(EventDecodeError):
            decode_event("order_created", "[1, 2]")


class TestSSEDecoder:
    """Tests for the incremental line decoder."""

    def feed_all(self, text: str) -> list:
        decoder = SSEDecoder()
        events = []
        for line in text.split("\n"):
            event = decoder.feed(line)
            if event is not None:
                events.append(event)
        return events

    def test_decodes_consecutive_frames(self):
        text = encode_sse(Connected()) + encode_sse(order_created("ord-1")) + encode_sse(order_created("ord-2"))

        events = self.feed_all(text)

        assert [e.type for e in events] == ["connected", "order_created", "order_created"]
        assert events[2].order_id == "ord-2"

    def test_ignores_comments_and_ids(self):
        text = ": keep-alive\nid: 7\nretry: 1000\nevent: order_created\ndata: {\"orderId\":\"ord-1\"}\n\n"
        events = self.feed_all(text)

        assert len(events) == 1
        assert events[0].order_id == "ord-1"

    def test_handles_crlf_lines(self):
        text = "event: order_created\r\ndata: {\"orderId\":\"ord-1\"}\r\n\r\n"
        assert len(self.feed_all(text)) == 1

    def test_bad_frame_does_not_stop_later_frames(self):
        text = "event: order_created\ndata: oops\n\n" + encode_sse(order_created("ord-2"))
        events = self.feed_all(text)

        assert [e.order_id for e in events] == ["ord-2"]

    def test_unknown_events_are_skipped(self):
        text = "event: something_new\ndata: {}\n\n" + encode_sse(order_created("ord-1"))
        assert len(self.feed_all(text)) == 1

    def test_blank_lines_alone_yield_nothing(self):
        assert self.feed_all("\n\n\n") == []
