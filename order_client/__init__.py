"""
Client side of the order backbone.

Follows live order updates over the push stream (with reconnect/backoff
and polling as the backstop) and holds client state: query cache, cart,
session and alerts.
"""

from order_client.alerts import AlertPlayer
from order_client.cart import Cart, Combo, build_combo
from order_client.context import ClientContext
from order_client.http_client import OrdersClient
from order_client.polling import OrderPoller
from order_client.query_cache import ORDER_ITEMS_RESOURCE, ORDERS_RESOURCE, QueryCache
from order_client.scheduler import ReconnectScheduler, reconnect_delay
from order_client.subscriber import ConnectionState, OrderUpdatesSubscriber
from order_client.transport import HttpEventStream
from order_client.views import CourierView, CustomerOrdersView, KitchenView

__all__ = [
    "AlertPlayer",
    "Cart",
    "ClientContext",
    "Combo",
    "ConnectionState",
    "CourierView",
    "CustomerOrdersView",
    "HttpEventStream",
    "KitchenView",
    "ORDERS_RESOURCE",
    "ORDER_ITEMS_RESOURCE",
    "OrderPoller",
    "OrderUpdatesSubscriber",
    "OrdersClient",
    "QueryCache",
    "ReconnectScheduler",
    "build_combo",
    "reconnect_delay",
]
