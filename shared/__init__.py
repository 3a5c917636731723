"""
Shared infrastructure for the order backbone.

This package contains code used by both the server and the client side:
- Domain models (Order, OrderItem, Product, etc.)
- The JSON-seeded order store
- The delivery zone table and fee resolver
- Settings read from the environment
"""

from shared.models import (
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    Product,
    Motoboy,
)
from shared.data_store import OrderStore
from shared.delivery_zones import DeliveryFeeResult, calculate_delivery_fee
from shared.config import Settings, get_settings

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderType",
    "Product",
    "Motoboy",
    "OrderStore",
    "DeliveryFeeResult",
    "calculate_delivery_fee",
    "Settings",
    "get_settings",
]
