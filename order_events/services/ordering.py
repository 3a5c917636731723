"""
Ordering service: the commands that change orders.

Every successful lifecycle command persists the change through the order
store and then publishes exactly one event before returning, so no
subscriber misses a change silently. The event is published while the store
lock is still held, which keeps events for one order in the order their
changes were persisted.

Delivery fee adjustments publish nothing: the event set is closed, and
clients pick the new fee and total up on their next refetch.

Key insight:
- This service ONLY publishes events
- It does not know whether a kitchen screen, a courier phone or nobody
  at all is listening
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from order_events.errors import (
    CourierUnavailableError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from order_events.events import order_assigned, order_created, order_status_changed
from order_events.publisher import EventPublisher, get_publisher
from order_events.transitions import allowed_transitions, is_valid_transition
from shared.config import get_settings
from shared.data_store import OrderStore, get_order_store
from shared.delivery_zones import calculate_delivery_fee
from shared.models import (
    Order,
    OrderCreate,
    OrderItem,
    OrderStatus,
    OrderType,
    STATUS_TIMESTAMP_FIELDS,
    round_money,
)

logger = logging.getLogger("ordering_service")


class OrderingService:
    """
    Order commands: create, transition, assign courier, adjust delivery fee.

    Example:
        service = OrderingService()

        order = service.create_order(OrderCreate(...))   # publishes order_created
        service.update_status(order.id, "accepted")       # publishes order_status_changed
    """

    def __init__(
        self,
        publisher: Optional[EventPublisher] = None,
        store: Optional[OrderStore] = None,
        strict_transitions: Optional[bool] = None,
        fallback_delivery_fee: Optional[float] = None,
    ):
        """
        Initialize the ordering service.

        Args:
            publisher: Where events go (defaults to the process publisher)
            store: Order store (defaults to the process store)
            strict_transitions: Reject illegal status jumps; None reads the settings
            fallback_delivery_fee: Fee for unlisted neighborhoods; None reads the settings
        """
        settings = get_settings()
        self.publisher = publisher or get_publisher()
        self.store = store or get_order_store()
        self.strict_transitions = (
            settings.strict_transitions if strict_transitions is None else strict_transitions
        )
        self.fallback_delivery_fee = (
            settings.fallback_delivery_fee if fallback_delivery_fee is None else fallback_delivery_fee
        )

    # =========================================================================
    # Create
    # =========================================================================

    def create_order(self, request: OrderCreate) -> Order:
        """
        Place an order.

        Item names and prices are copied from the catalog, stock is deducted
        and the totals are computed here rather than trusted from the client.

        Raises:
            ProductNotFoundError: an item references an unknown product
        """
        order_id = str(uuid4())

        items = []
        for line in request.items:
            product = self.store.get_product(line.product_id)
            if product is None:
                raise ProductNotFoundError(line.product_id)
            items.append(OrderItem(
                id=str(uuid4()),
                order_id=order_id,
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=product.sale_price,
                total_price=round_money(product.sale_price * line.quantity),
            ))

        subtotal = round_money(sum(item.total_price for item in items))
        if request.order_type == OrderType.DELIVERY.value:
            fee_result = calculate_delivery_fee(request.neighborhood, self.fallback_delivery_fee)
            delivery_fee, fee_unlisted = fee_result.fee, fee_result.is_unlisted
        else:
            delivery_fee, fee_unlisted = 0.0, False
        discount = round_money(min(request.discount, subtotal))
        total = round_money(subtotal - discount + delivery_fee)

        order = Order(
            id=order_id,
            user_id=request.user_id,
            order_type=request.order_type,
            status=OrderStatus.PENDING,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            delivery_fee_unlisted=fee_unlisted,
            discount=discount,
            total=total,
            payment_method=request.payment_method,
            change_for=request.change_for,
            notes=request.notes,
            customer_name=request.customer_name,
            neighborhood=request.neighborhood,
        )

        with self.store.lock:
            self.store.insert_order(order, items)
            for item in items:
                self.store.adjust_stock(item.product_id, -item.quantity, f"Pedido #{order_id[:8]}")

            logger.info(f"Order {order_id} created: {len(items)} item(s), total {total:.2f}")
            self.publisher.publish(order_created(order_id, order.status))

        return order

    # =========================================================================
    # Status transition
    # =========================================================================

    def update_status(self, order_id: str, status: str) -> Order:
        """
        Move an order to a new status and publish the change.

        The stage timestamp for the new status is stamped with the current
        time unless it is already set, so each stage records the moment the
        order first entered it.

        Raises:
            OrderNotFoundError: unknown order
            InvalidTransitionError: illegal jump while strict transitions are on
        """
        status = OrderStatus(status).value

        with self.store.lock:
            order = self.store.get_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)

            previous_status = order.status
            if self.strict_transitions and not is_valid_transition(previous_status, status, order.order_type):
                raise InvalidTransitionError(
                    previous_status, status, allowed_transitions(previous_status, order.order_type)
                )

            changes: dict = {"status": status}
            timestamp_field = STATUS_TIMESTAMP_FIELDS.get(status)
            if timestamp_field and getattr(order, timestamp_field) is None:
                changes[timestamp_field] = datetime.utcnow()

            updated = self.store.update_order(order_id, changes)

            if status == OrderStatus.CANCELLED.value and previous_status != status:
                self._restore_stock(order_id)

            logger.info(f"Order {order_id}: {previous_status} -> {status}")
            self.publisher.publish(order_status_changed(order_id, status, previous_status))

        return updated

    def _restore_stock(self, order_id: str) -> None:
        for item in self.store.get_order_items(order_id):
            self.store.adjust_stock(item.product_id, item.quantity, f"Cancelamento pedido #{order_id[:8]}")

    # =========================================================================
    # Courier assignment
    # =========================================================================

    def assign_courier(self, order_id: str, motoboy_id: str) -> Order:
        """
        Hand a ready order to a courier; the order becomes dispatched.

        Raises:
            OrderNotFoundError: unknown order
            CourierUnavailableError: unknown/inactive courier or order not ready
        """
        with self.store.lock:
            order = self.store.get_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)

            motoboy = self.store.get_motoboy(motoboy_id)
            if motoboy is None or not motoboy.is_active:
                raise CourierUnavailableError(f"Courier not available: {motoboy_id}")
            if order.status != OrderStatus.READY.value:
                raise CourierUnavailableError(
                    f"Order must be ready to assign a courier. Current status: {order.status}"
                )

            changes: dict = {"motoboy_id": motoboy_id, "status": OrderStatus.DISPATCHED.value}
            if order.dispatched_at is None:
                changes["dispatched_at"] = datetime.utcnow()
            updated = self.store.update_order(order_id, changes)

            logger.info(f"Order {order_id} assigned to courier {motoboy_id}")
            self.publisher.publish(order_assigned(order_id, motoboy_id, OrderStatus.DISPATCHED.value))

        return updated

    # =========================================================================
    # Delivery fee adjustment
    # =========================================================================

    def adjust_delivery_fee(self, order_id: str, delivery_fee: float) -> Order:
        """
        Replace an order's delivery fee and recompute its total.

        Used when staff settle the real fee for an unlisted neighborhood.
        The fee the order was created with is kept in
        ``original_delivery_fee``; later adjustments never overwrite it.

        Raises:
            OrderNotFoundError: unknown order
            ValueError: negative fee
        """
        if delivery_fee < 0:
            raise ValueError(f"Delivery fee must not be negative: {delivery_fee}")
        new_fee = round_money(delivery_fee)

        with self.store.lock:
            order = self.store.get_order(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)

            original_fee = (
                order.original_delivery_fee if order.original_delivery_fee is not None else order.delivery_fee
            )
            total = round_money(order.subtotal - order.discount + new_fee)
            updated = self.store.update_order(order_id, {
                "delivery_fee": new_fee,
                "original_delivery_fee": original_fee,
                "delivery_fee_adjusted": True,
                "delivery_fee_adjusted_at": datetime.utcnow(),
                "total": total,
            })

        logger.info(f"Order {order_id}: delivery fee {original_fee:.2f} -> {new_fee:.2f}, total {total:.2f}")
        return updated
