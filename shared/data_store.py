"""
JSON-seeded order store.

This module is the order store collaborator the notification core talks to.
It loads catalog, couriers and any seed orders from JSON fixtures and keeps
all writes in memory.

Design decisions:
- Fixtures are loaded lazily on first access
- Orders are replaced, never edited in place (pydantic model_copy)
- One re-entrant lock guards every write; command endpoints run in a threadpool
- Orders are never deleted; terminal ones stay for history
- An order and its items are inserted together or not at all
"""

import json
import threading
from pathlib import Path
from typing import Any, Iterable, Optional

from shared.config import get_settings
from shared.models import (
    Motoboy,
    Order,
    OrderItem,
    Product,
    StockLog,
)


class OrderStore:
    """
    In-memory order store seeded from JSON fixtures.

    Stands in for the relational orders/order_items tables owned by the
    surrounding application. Reads return snapshots; the only mutations are
    order insertion, order updates and stock movements.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            data_dir: Directory holding products.json, motoboys.json,
                     orders.json and order_items.json. Defaults to ./data
                     relative to the project root. Missing files are empty.
        """
        if data_dir is None:
            data_dir = Path(__file__).parent.parent / "data"

        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

        self._products: Optional[dict[str, Product]] = None
        self._motoboys: Optional[dict[str, Motoboy]] = None
        self._orders: Optional[dict[str, Order]] = None
        self._items: Optional[dict[str, list[OrderItem]]] = None  # keyed by order_id
        self._stock_logs: list[StockLog] = []

    @property
    def lock(self) -> threading.RLock:
        """Lock callers hold to make read-modify-write sequences atomic."""
        return self._lock

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self, filename: str) -> list[dict]:
        filepath = self.data_dir / filename
        if not filepath.exists():
            return []
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)

    def _ensure_products_loaded(self):
        if self._products is None:
            self._products = {p["id"]: Product(**p) for p in self._load_json("products.json")}

    def _ensure_motoboys_loaded(self):
        if self._motoboys is None:
            self._motoboys = {m["id"]: Motoboy(**m) for m in self._load_json("motoboys.json")}

    def _ensure_orders_loaded(self):
        if self._orders is None:
            with self._lock:
                if self._orders is None:
                    orders = {o["id"]: Order(**o) for o in self._load_json("orders.json")}
                    items: dict[str, list[OrderItem]] = {order_id: [] for order_id in orders}
                    for raw in self._load_json("order_items.json"):
                        item = OrderItem(**raw)
                        items.setdefault(item.order_id, []).append(item)
                    self._items = items
                    self._orders = orders

    # =========================================================================
    # Catalog
    # =========================================================================

    def get_product(self, product_id: str) -> Optional[Product]:
        self._ensure_products_loaded()
        return self._products.get(product_id)

    def get_products(self) -> list[Product]:
        self._ensure_products_loaded()
        return list(self._products.values())

    def adjust_stock(self, product_id: str, change: int, reason: str) -> Optional[StockLog]:
        """
        Move a product's stock by ``change`` units, never below zero.

        Returns the stock log entry, or None if the product is unknown.
        """
        with self._lock:
            product = self.get_product(product_id)
            if product is None:
                return None
            new_stock = max(0, product.stock + change)
            self._products[product_id] = product.model_copy(update={"stock": new_stock})
            log = StockLog(
                product_id=product_id,
                previous_stock=product.stock,
                new_stock=new_stock,
                change=change,
                reason=reason,
            )
            self._stock_logs.append(log)
            return log

    def get_stock_logs(self, product_id: Optional[str] = None) -> list[StockLog]:
        with self._lock:
            if product_id is None:
                return list(self._stock_logs)
            return [log for log in self._stock_logs if log.product_id == product_id]

    # =========================================================================
    # Couriers
    # =========================================================================

    def get_motoboy(self, motoboy_id: str) -> Optional[Motoboy]:
        self._ensure_motoboys_loaded()
        return self._motoboys.get(motoboy_id)

    def get_motoboys(self) -> list[Motoboy]:
        self._ensure_motoboys_loaded()
        return list(self._motoboys.values())

    # =========================================================================
    # Orders
    # =========================================================================

    def get_order(self, order_id: str) -> Optional[Order]:
        self._ensure_orders_loaded()
        return self._orders.get(order_id)

    def get_orders(
        self,
        order_ids: Optional[Iterable[str]] = None,
        user_id: Optional[str] = None,
        motoboy_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> list[Order]:
        """
        Query orders, newest first.

        Every filter that is given must match; an empty ``order_ids``
        collection matches nothing.
        """
        self._ensure_orders_loaded()
        with self._lock:
            orders = list(self._orders.values())

        if order_ids is not None:
            wanted = set(order_ids)
            orders = [o for o in orders if o.id in wanted]
        if user_id is not None:
            orders = [o for o in orders if o.user_id == user_id]
        if motoboy_id is not None:
            orders = [o for o in orders if o.motoboy_id == motoboy_id]
        if statuses is not None:
            allowed = set(statuses)
            orders = [o for o in orders if o.status in allowed]

        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    def get_orders_by_user(self, user_id: str) -> list[Order]:
        return self.get_orders(user_id=user_id)

    def get_orders_by_status(self, status: str) -> list[Order]:
        return self.get_orders(statuses=[status])

    def insert_order(self, order: Order, items: list[OrderItem]) -> Order:
        """Insert an order together with its items."""
        self._ensure_orders_loaded()
        for item in items:
            if item.order_id != order.id:
                raise ValueError(f"Item {item.id} belongs to order {item.order_id}, not {order.id}")
        with self._lock:
            if order.id in self._orders:
                raise ValueError(f"Order already exists: {order.id}")
            self._orders[order.id] = order
            self._items[order.id] = list(items)
        return order

    def update_order(self, order_id: str, changes: dict[str, Any]) -> Optional[Order]:
        """
        Apply field changes to an order.

        Returns the updated order or None if not found.
        """
        self._ensure_orders_loaded()
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            # Re-validate so enum and money constraints still hold
            updated = Order(**{**order.model_dump(), **changes})
            self._orders[order_id] = updated
            return updated

    # =========================================================================
    # Order items
    # =========================================================================

    def get_order_items(self, order_id: str) -> list[OrderItem]:
        self._ensure_orders_loaded()
        with self._lock:
            return list(self._items.get(order_id, []))

    def get_order_items_by_order_ids(self, order_ids: Iterable[str]) -> list[OrderItem]:
        self._ensure_orders_loaded()
        with self._lock:
            return [item for order_id in order_ids for item in self._items.get(order_id, [])]

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def reload(self):
        """Drop all in-memory state and reload from the fixtures on next access."""
        with self._lock:
            self._products = None
            self._motoboys = None
            self._orders = None
            self._items = None
            self._stock_logs = []


# Module-level singleton for convenience
# In tests, create a new OrderStore instance with test fixtures
_default_store: Optional[OrderStore] = None


def get_order_store() -> OrderStore:
    """Get the default order store singleton."""
    global _default_store
    if _default_store is None:
        _default_store = OrderStore(get_settings().data_dir)
    return _default_store


def reset_order_store(store: Optional[OrderStore] = None) -> Optional[OrderStore]:
    """Replace the default order store (None drops it until next use)."""
    global _default_store
    _default_store = store
    return _default_store
