"""Domain errors raised by the ordering service and mapped to HTTP at the edge."""


class OrderingError(Exception):
    """Base class for ordering command failures."""


class OrderNotFoundError(OrderingError, LookupError):
    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class ProductNotFoundError(OrderingError, LookupError):
    def __init__(self, product_id: str):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class InvalidTransitionError(OrderingError, ValueError):
    """The target status is not a legal successor of the current one."""

    def __init__(self, current_status: str, new_status: str, allowed: tuple[str, ...]):
        super().__init__(f"Invalid transition: {current_status} -> {new_status}")
        self.current_status = current_status
        self.new_status = new_status
        self.allowed = allowed


class CourierUnavailableError(OrderingError, ValueError):
    """The courier does not exist, is inactive, or the order is not ready."""
