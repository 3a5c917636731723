"""
Domain models for the delivery storefront.

These models describe what the order store holds and what travels over the
request/response API. Push events live in order_events/events.py.

Design decisions:
- Using Pydantic for validation and serialization
- Money is a float rounded to cents, matching the catalog's decimal(10,2) columns
- Order items are a frozen snapshot of the catalog at order time
- Every lifecycle stage has its own timestamp column, set once
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


# =============================================================================
# Enums - Status values used across the domain
# =============================================================================

class OrderStatus(str, Enum):
    """
    Order lifecycle states.

    Delivery orders go pending -> accepted -> preparing -> ready ->
    dispatched -> arrived -> delivered. Counter orders skip the courier
    stages. Any non-terminal order can be cancelled.
    """
    PENDING = "pending"           # Placed by the customer, waiting for the kitchen
    ACCEPTED = "accepted"         # Kitchen took the order
    PREPARING = "preparing"       # Being prepared
    READY = "ready"               # Waiting for a courier or for pickup
    DISPATCHED = "dispatched"     # Out with a courier
    ARRIVED = "arrived"           # Courier is at the address
    DELIVERED = "delivered"       # Handed over (terminal)
    CANCELLED = "cancelled"       # Cancelled (terminal)


class OrderType(str, Enum):
    DELIVERY = "delivery"
    COUNTER = "counter"


class PaymentMethod(str, Enum):
    CASH = "cash"
    PIX = "pix"
    CARD = "card"


class ProductType(str, Enum):
    """Product lines that can take part in a combo."""
    SPIRIT = "spirit"
    ENERGY_DRINK = "energy_drink"
    ICE = "ice"
    OTHER = "other"


# Timestamp column stamped when an order enters each status
STATUS_TIMESTAMP_FIELDS: dict[str, str] = {
    OrderStatus.ACCEPTED.value: "accepted_at",
    OrderStatus.PREPARING.value: "preparing_at",
    OrderStatus.READY.value: "ready_at",
    OrderStatus.DISPATCHED.value: "dispatched_at",
    OrderStatus.ARRIVED.value: "arrived_at",
    OrderStatus.DELIVERED.value: "delivered_at",
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value})


def round_money(value: float) -> float:
    """Round a money amount to cents."""
    return round(value, 2)


# =============================================================================
# Catalog
# =============================================================================

class Product(BaseModel):
    """
    Catalog product.

    Prices can change at any time; orders keep their own copy of the
    price in OrderItem.unit_price.
    """
    id: str = Field(..., description="Unique product identifier")
    name: str = Field(..., description="Product display name")
    sale_price: float = Field(..., ge=0, description="Current price")
    stock: int = Field(default=0, ge=0)
    category: str = Field(default="general")
    product_type: ProductType = Field(default=ProductType.OTHER)
    combo_eligible: bool = Field(default=False)

    model_config = ConfigDict(use_enum_values=True)


class Motoboy(BaseModel):
    """A delivery courier."""
    id: str
    name: str
    whatsapp: str
    is_active: bool = True


class StockLog(BaseModel):
    """Audit record of a stock movement caused by an order."""
    product_id: str
    previous_stock: int
    new_stock: int
    change: int
    reason: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# Orders
# =============================================================================

class OrderItem(BaseModel):
    """
    A single line within an order.

    Product name and price are copied at order time, so later catalog
    edits never change an existing order.
    """
    id: str = Field(..., description="Unique item identifier")
    order_id: str = Field(..., description="Owning order")
    product_id: str
    product_name: str
    quantity: int = Field(..., ge=1)
    unit_price: float = Field(..., ge=0, description="Price at time of order")
    total_price: float = Field(..., ge=0)

    model_config = ConfigDict(frozen=True)


class Order(BaseModel):
    """
    An order placed in the storefront.

    Mutated only through the status transition, courier assignment and
    delivery fee adjustment commands; terminal orders are kept for history.
    """
    id: str = Field(..., description="Unique order identifier")
    user_id: str = Field(..., description="Customer who placed the order")
    order_type: OrderType = Field(default=OrderType.DELIVERY)
    status: OrderStatus = Field(default=OrderStatus.PENDING)

    subtotal: float = Field(..., ge=0)
    delivery_fee: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0)
    total: float = Field(..., ge=0)

    # Unlisted neighborhoods get the fallback fee; staff may correct it later
    delivery_fee_unlisted: bool = Field(default=False, description="Fee is the fallback for an unlisted neighborhood")
    original_delivery_fee: Optional[float] = Field(default=None, ge=0, description="Fee before the first adjustment")
    delivery_fee_adjusted: bool = False
    delivery_fee_adjusted_at: Optional[datetime] = None

    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    change_for: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    customer_name: Optional[str] = None
    neighborhood: Optional[str] = None
    motoboy_id: Optional[str] = Field(default=None, description="Assigned courier")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    accepted_at: Optional[datetime] = None
    preparing_at: Optional[datetime] = None
    ready_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def stage_timestamps(self) -> list[Optional[datetime]]:
        """Stage timestamps in lifecycle order."""
        return [getattr(self, name) for name in STATUS_TIMESTAMP_FIELDS.values()]


class OrderItemRequest(BaseModel):
    """A line of a create-order request; prices come from the catalog."""
    product_id: str
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    """
    Create-order request body.

    The server computes subtotal, delivery fee and total itself;
    the client only supplies the discount it earned from combos.
    """
    user_id: str
    order_type: OrderType = OrderType.DELIVERY
    payment_method: PaymentMethod = PaymentMethod.CASH
    items: list[OrderItemRequest] = Field(..., min_length=1)
    neighborhood: Optional[str] = None
    discount: float = Field(default=0.0, ge=0)
    change_for: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    customer_name: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class StatusUpdate(BaseModel):
    """Status transition command body."""
    status: OrderStatus

    model_config = ConfigDict(use_enum_values=True)


class DeliveryFeeUpdate(BaseModel):
    """Delivery fee adjustment body (camelCase accepted from browsers)."""
    delivery_fee: float = Field(..., ge=0, alias="deliveryFee")

    model_config = ConfigDict(populate_by_name=True)


class CourierAssignment(BaseModel):
    """Courier assignment command body (camelCase accepted from browsers)."""
    motoboy_id: str = Field(..., alias="motoboyId")

    model_config = ConfigDict(populate_by_name=True)
