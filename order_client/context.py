"""
Root client context.

One ClientContext lives for the whole client process and owns the state
every screen shares: who is signed in and what is in the cart. Screens read
it and subscribe to it instead of reaching for module globals.
"""

import logging
from pathlib import Path
from typing import Callable, Literal, Optional

from pydantic import BaseModel

from order_client.cart import Cart

logger = logging.getLogger("client_context")

Role = Literal["customer", "kitchen", "motoboy", "admin"]


class Session(BaseModel):
    user_id: Optional[str] = None
    role: Role = "customer"
    name: Optional[str] = None

    @property
    def signed_in(self) -> bool:
        return self.user_id is not None


class ClientContext:
    """
    Session + cart for one client process.

    Example:
        with ClientContext(cart_path=Path("~/.orders-cart.json").expanduser()) as ctx:
            ctx.sign_in("user-1", "customer")
            ctx.cart.add_item(product)
    """

    def __init__(self, cart_path: Optional[Path] = None):
        self.cart_path = cart_path
        self.session = Session()
        self.cart = Cart()
        self._listeners: list[Callable[[Session], None]] = []
        self._started = False

    def start(self) -> "ClientContext":
        """Restore the saved cart, if any."""
        if self._started:
            return self
        if self.cart_path is not None and self.cart_path.exists():
            try:
                self.cart = Cart.from_json(self.cart_path.read_text())
                logger.info(f"Restored cart with {self.cart.item_count} item(s)")
            except ValueError as e:
                logger.warning(f"Ignoring unreadable cart file {self.cart_path}: {e}")
        self._started = True
        return self

    def close(self) -> None:
        """Persist the cart and drop listeners."""
        if self.cart_path is not None:
            self.cart_path.write_text(self.cart.to_json())
        self._listeners.clear()
        self._started = False

    def __enter__(self) -> "ClientContext":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def sign_in(self, user_id: str, role: Role = "customer", name: Optional[str] = None) -> Session:
        self.session = Session(user_id=user_id, role=role, name=name)
        logger.info(f"Signed in {user_id} as {role}")
        self._notify()
        return self.session

    def sign_out(self) -> None:
        self.session = Session()
        self._notify()

    def subscribe(self, listener: Callable[[Session], None]) -> Callable[[], None]:
        """Be told when the session changes. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.session)
            except Exception:
                logger.exception("Session listener failed")
