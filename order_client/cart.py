"""
Shopping cart and combo pricing.

A combo bundles one spirit, energy drinks and ice at a percentage discount.
Its three products go into the cart as combo-tagged lines that are never
merged with freestanding lines of the same product, so removing the combo
removes exactly what it added.

Totals:
    subtotal       = sum(unit price * quantity) over every line
    combo_discount = sum(original_total - discounted_total) over combos
    total          = subtotal - combo_discount
"""

import json
import logging
from typing import Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from shared.models import (
    OrderCreate,
    OrderItemRequest,
    OrderType,
    PaymentMethod,
    Product,
    round_money,
)

logger = logging.getLogger("cart")

DEFAULT_COMBO_DISCOUNT_PERCENT = 5.0

LARGE_ENERGY_DRINK_OPTION = "2L"
LARGE_ICE_MARKERS = ("kg", "saco", "grande")


# =============================================================================
# Combos
# =============================================================================

class Combo(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    spirit: Product
    energy_drink: Product
    energy_drink_quantity: int = Field(..., ge=1)
    ice: Product
    ice_quantity: int = Field(..., ge=1)
    discount_percent: float = Field(default=DEFAULT_COMBO_DISCOUNT_PERCENT, ge=0, le=100)
    original_total: float = Field(..., ge=0)
    discounted_total: float = Field(..., ge=0)

    @property
    def savings(self) -> float:
        return round_money(self.original_total - self.discounted_total)


def energy_drink_quantity_for(option: str) -> int:
    """One bottle of the 2L option, otherwise a five-pack of cans."""
    return 1 if option == LARGE_ENERGY_DRINK_OPTION else 5


def ice_quantity_for(ice: Product) -> int:
    """One large bag, otherwise five small ones."""
    name = ice.name.lower()
    return 1 if any(marker in name for marker in LARGE_ICE_MARKERS) else 5


def build_combo(
    spirit: Product,
    energy_drink: Product,
    ice: Product,
    energy_drink_quantity: int,
    ice_quantity: Optional[int] = None,
    discount_percent: float = DEFAULT_COMBO_DISCOUNT_PERCENT,
) -> Combo:
    """Price a combo from catalog products."""
    if ice_quantity is None:
        ice_quantity = ice_quantity_for(ice)

    original_total = round_money(
        spirit.sale_price
        + energy_drink.sale_price * energy_drink_quantity
        + ice.sale_price * ice_quantity
    )
    discounted_total = round_money(original_total * (1 - discount_percent / 100))

    return Combo(
        spirit=spirit,
        energy_drink=energy_drink,
        energy_drink_quantity=energy_drink_quantity,
        ice=ice,
        ice_quantity=ice_quantity,
        discount_percent=discount_percent,
        original_total=original_total,
        discounted_total=discounted_total,
    )


# =============================================================================
# Cart
# =============================================================================

class CartLine(BaseModel):
    product: Product
    quantity: int = Field(..., ge=1)
    is_combo_item: bool = False
    combo_id: Optional[str] = None

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def line_total(self) -> float:
        return round_money(self.product.sale_price * self.quantity)


class _CartSnapshot(BaseModel):
    lines: list[CartLine] = Field(default_factory=list)
    combos: list[Combo] = Field(default_factory=list)


class Cart:
    """
    In-memory cart with change listeners.

    Example:
        cart = Cart()
        cart.add_item(beer, 6)
        cart.add_combo(build_combo(vodka, energy, ice, 2))
        cart.total
    """

    def __init__(self):
        self._lines: list[CartLine] = []
        self._combos: list[Combo] = []
        self._listeners: list[Callable[["Cart"], None]] = []

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def combos(self) -> tuple[Combo, ...]:
        return tuple(self._combos)

    def _freestanding_index(self, product_id: str) -> Optional[int]:
        for index, line in enumerate(self._lines):
            if line.product_id == product_id and not line.is_combo_item:
                return index
        return None

    # =========================================================================
    # Items
    # =========================================================================

    def add_item(self, product: Product, quantity: int = 1) -> None:
        if quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {quantity}")
        index = self._freestanding_index(product.id)
        if index is None:
            self._lines.append(CartLine(product=product, quantity=quantity))
        else:
            line = self._lines[index]
            self._lines[index] = line.model_copy(update={"quantity": line.quantity + quantity})
        self._changed()

    def remove_item(self, product_id: str) -> bool:
        index = self._freestanding_index(product_id)
        if index is None:
            return False
        del self._lines[index]
        self._changed()
        return True

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set a freestanding line's quantity; zero or less removes it."""
        if quantity <= 0:
            self.remove_item(product_id)
            return
        index = self._freestanding_index(product_id)
        if index is None:
            return
        self._lines[index] = self._lines[index].model_copy(update={"quantity": quantity})
        self._changed()

    # =========================================================================
    # Combos
    # =========================================================================

    def add_combo(self, combo: Combo) -> None:
        self._combos.append(combo)
        for product, quantity in (
            (combo.spirit, 1),
            (combo.energy_drink, combo.energy_drink_quantity),
            (combo.ice, combo.ice_quantity),
        ):
            self._lines.append(CartLine(product=product, quantity=quantity, is_combo_item=True, combo_id=combo.id))
        logger.debug(f"Combo {combo.id[:8]} added ({combo.discounted_total:.2f})")
        self._changed()

    def remove_combo(self, combo_id: str) -> bool:
        before = len(self._combos)
        self._combos = [combo for combo in self._combos if combo.id != combo_id]
        if len(self._combos) == before:
            return False
        self._lines = [line for line in self._lines if line.combo_id != combo_id]
        self._changed()
        return True

    def clear(self) -> None:
        self._lines = []
        self._combos = []
        self._changed()

    # =========================================================================
    # Totals
    # =========================================================================

    @property
    def subtotal(self) -> float:
        return round_money(sum(line.product.sale_price * line.quantity for line in self._lines))

    @property
    def combo_discount(self) -> float:
        return round_money(sum(combo.original_total - combo.discounted_total for combo in self._combos))

    @property
    def total(self) -> float:
        return round_money(self.subtotal - self.combo_discount)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    # =========================================================================
    # Listeners, persistence, checkout
    # =========================================================================

    def subscribe(self, listener: Callable[["Cart"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Cart listener failed")

    def to_json(self) -> str:
        return _CartSnapshot(lines=self._lines, combos=self._combos).model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "Cart":
        snapshot = _CartSnapshot(**json.loads(raw))
        cart = cls()
        cart._lines = list(snapshot.lines)
        cart._combos = list(snapshot.combos)
        return cart

    def to_order_request(
        self,
        user_id: str,
        order_type: str = OrderType.DELIVERY.value,
        payment_method: str = PaymentMethod.CASH.value,
        neighborhood: Optional[str] = None,
        change_for: Optional[float] = None,
        notes: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> OrderCreate:
        """Build the create-order body; the combo savings travel as the discount."""
        if self.is_empty:
            raise ValueError("Cannot place an order from an empty cart")
        return OrderCreate(
            user_id=user_id,
            order_type=order_type,
            payment_method=payment_method,
            items=[OrderItemRequest(product_id=line.product_id, quantity=line.quantity) for line in self._lines],
            neighborhood=neighborhood,
            discount=self.combo_discount,
            change_for=change_for,
            notes=notes,
            customer_name=customer_name,
        )
