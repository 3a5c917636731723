"""
Live order-state notifications, server side.

This package implements the push half of the order backbone:
- Ordering commands persist a change and publish one typed event
- The publisher fans each event out to every open push connection
- The registry tracks those connections; a broken one is simply dropped
"""

from order_events.events import EventTypes, OrderEvent, encode_sse, decode_event
from order_events.publisher import EventPublisher, get_publisher, reset_publisher
from order_events.registry import Subscription, SubscriptionRegistry
from order_events.services.ordering import OrderingService

__all__ = [
    "EventTypes",
    "OrderEvent",
    "encode_sse",
    "decode_event",
    "EventPublisher",
    "get_publisher",
    "reset_publisher",
    "Subscription",
    "SubscriptionRegistry",
    "OrderingService",
]
