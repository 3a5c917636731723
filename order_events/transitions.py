"""
Order status state machine.

Delivery orders pass through the courier stages; counter orders go straight
from the kitchen to the customer. Any non-terminal order may be cancelled.
"""

from shared.models import OrderStatus, OrderType, TERMINAL_STATUSES

P, AC, PR, R, DI, AR, DE, CA = (
    OrderStatus.PENDING.value,
    OrderStatus.ACCEPTED.value,
    OrderStatus.PREPARING.value,
    OrderStatus.READY.value,
    OrderStatus.DISPATCHED.value,
    OrderStatus.ARRIVED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.CANCELLED.value,
)

DELIVERY_TRANSITIONS: dict[str, tuple[str, ...]] = {
    P: (AC, CA),
    AC: (PR, CA),
    PR: (R, CA),
    R: (DI, CA),
    DI: (AR, DE, CA),
    AR: (DE, CA),
    DE: (),
    CA: (),
}

COUNTER_TRANSITIONS: dict[str, tuple[str, ...]] = {
    P: (AC, CA),
    AC: (PR, DE, CA),
    PR: (R, DE, CA),
    R: (DE, CA),
    DE: (),
    CA: (),
}


def allowed_transitions(current_status: str, order_type: str = OrderType.DELIVERY.value) -> tuple[str, ...]:
    """Statuses an order may move to next."""
    table = COUNTER_TRANSITIONS if order_type == OrderType.COUNTER.value else DELIVERY_TRANSITIONS
    return table.get(current_status, ())


def is_valid_transition(current_status: str, new_status: str, order_type: str = OrderType.DELIVERY.value) -> bool:
    return new_status in allowed_transitions(current_status, order_type)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
