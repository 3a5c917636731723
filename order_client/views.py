"""
Role views: kitchen, courier and customer.

Each view wires the same three pieces together:

    OrderUpdatesSubscriber --invalidates--> QueryCache <--refetches-- OrderPoller

and adds its own reaction to events (alerts for staff, notices for the
customer). Views are thin: what they show is whatever the last fetch of
their query key returned.

Design decisions:
- Every view's query key starts with "/api/orders", so every domain event
  invalidates it; relevance filtering (is this MY order?) happens here on
  the client, the server broadcasts everything
- unmount() tears everything down even if one step fails
- Status changes issued from a view report success as a bool; failures
  become a notice, never an exception in the UI
- Staff views also poll the items of the orders they show, at the same
  connection-aware interval; each orders refetch triggers an items refetch
"""

import asyncio
import logging
from typing import Callable, Optional

import httpx

from order_client.alerts import AlertPlayer
from order_client.http_client import OrdersClient
from order_client.polling import OrderPoller
from order_client.query_cache import ORDER_ITEMS_RESOURCE, ORDERS_RESOURCE, QueryCache, QueryKey
from order_client.scheduler import ReconnectScheduler
from order_client.subscriber import EventStream, OrderUpdatesSubscriber
from order_events.events import OrderAssigned, OrderCreated, OrderStatusChanged
from shared.models import Order, OrderItem, OrderStatus

logger = logging.getLogger("order_views")

STATUS_LABELS = {
    OrderStatus.PENDING.value: "Pendente",
    OrderStatus.ACCEPTED.value: "Aceito",
    OrderStatus.PREPARING.value: "Em preparo",
    OrderStatus.READY.value: "Pronto",
    OrderStatus.DISPATCHED.value: "Saiu para entrega",
    OrderStatus.ARRIVED.value: "Entregador chegou",
    OrderStatus.DELIVERED.value: "Entregue",
    OrderStatus.CANCELLED.value: "Cancelado",
}


class OrderView:
    """
    Base class for a screen that lists orders and follows live updates.

    Shows every order by default. Subclasses narrow the query key and the
    fetch, and add their event reactions.
    """

    role = "orders"
    follows_items = False

    def __init__(
        self,
        client: OrdersClient,
        stream: EventStream,
        cache: Optional[QueryCache] = None,
        alerts: Optional[AlertPlayer] = None,
        notify: Optional[Callable[[str], None]] = None,
        scheduler: Optional[ReconnectScheduler] = None,
        connected_interval: Optional[float] = None,
        disconnected_interval: Optional[float] = None,
    ):
        self.client = client
        self.cache = cache if cache is not None else QueryCache()
        self.alerts = alerts or AlertPlayer()
        self._notify_callback = notify
        self.notices: list[str] = []
        self._alert_tasks: set[asyncio.Task] = set()

        self.subscriber = OrderUpdatesSubscriber(
            stream,
            cache=self.cache,
            on_connected=self.on_connected,
            on_disconnected=self.on_disconnected,
            on_order_created=self.on_order_created,
            on_order_status_changed=self.on_order_status_changed,
            on_order_assigned=self.on_order_assigned,
            scheduler=scheduler,
        )
        self.items_poller: Optional[OrderPoller] = None
        if self.follows_items:
            self.items_poller = OrderPoller(
                self.cache,
                self.items_key,
                self.fetch_order_items,
                is_connected=lambda: self.subscriber.is_connected,
                connected_interval=connected_interval,
                disconnected_interval=disconnected_interval,
            )
        self.poller = OrderPoller(
            self.cache,
            self.query_key,
            self.fetch_orders,
            is_connected=lambda: self.subscriber.is_connected,
            connected_interval=connected_interval,
            disconnected_interval=disconnected_interval,
            on_refresh=self._orders_refreshed,
        )

    @property
    def query_key(self) -> QueryKey:
        return (ORDERS_RESOURCE,)

    @property
    def items_key(self) -> QueryKey:
        return (ORDER_ITEMS_RESOURCE,) + self.query_key[1:]

    async def fetch_orders(self) -> list[Order]:
        return await self.client.list_orders()

    async def fetch_order_items(self) -> list[OrderItem]:
        order_ids = [order.id for order in self.orders]
        if not order_ids:
            return []
        return await self.client.get_order_items(order_ids)

    @property
    def orders(self) -> list[Order]:
        return self.cache.get(self.query_key, [])

    @property
    def order_items(self) -> list[OrderItem]:
        return self.cache.get(self.items_key, [])

    def items_for(self, order_id: str) -> list[OrderItem]:
        return [item for item in self.order_items if item.order_id == order_id]

    def _orders_refreshed(self, orders: list[Order]) -> None:
        # New orders need their items; refetch them now rather than on the next cycle
        if self.items_poller is not None:
            self.items_poller.wake()

    @property
    def is_connected(self) -> bool:
        return self.subscriber.is_connected

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def mount(self) -> None:
        """Start following orders. Call from inside the running event loop."""
        logger.info(f"Mounting {self.role} view")
        self.subscriber.connect()
        if self.items_poller is not None:
            self.items_poller.start()
        self.poller.start()

    async def unmount(self) -> None:
        """Stop everything this view started."""
        try:
            self.subscriber.disconnect()
        finally:
            try:
                await self._stop_polling()
            finally:
                self.alerts.stop_all()
                for task in list(self._alert_tasks):
                    task.cancel()
                logger.info(f"Unmounted {self.role} view")

    async def _stop_polling(self) -> None:
        try:
            await self.poller.stop()
        finally:
            if self.items_poller is not None:
                await self.items_poller.stop()

    async def __aenter__(self) -> "OrderView":
        self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unmount()

    # =========================================================================
    # Commands
    # =========================================================================

    async def update_status(self, order_id: str, status: str) -> bool:
        """Issue a status transition; True on success."""
        try:
            await self.client.update_status(order_id, status)
        except httpx.HTTPError as e:
            logger.warning(f"Status update of {order_id} to {status} failed: {e}")
            self.notify(f"Erro ao atualizar pedido #{order_id[:8]}")
            return False
        self.notify(f"Pedido #{order_id[:8]}: {STATUS_LABELS.get(status, status)}")
        return True

    # =========================================================================
    # Event reactions
    # =========================================================================

    def on_connected(self) -> None:
        pass

    def on_disconnected(self) -> None:
        pass

    def on_order_created(self, event: OrderCreated) -> None:
        pass

    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        pass

    def on_order_assigned(self, event: OrderAssigned) -> None:
        pass

    # =========================================================================
    # Helpers
    # =========================================================================

    def notify(self, message: str) -> None:
        self.notices.append(message)
        logger.info(f"[{self.role}] {message}")
        if self._notify_callback is not None:
            self._notify_callback(message)

    def _alert_repeatedly(self, times: int) -> None:
        task = asyncio.get_running_loop().create_task(self.alerts.play_multiple(times))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)


class KitchenView(OrderView):
    """Every order, with alerts for new and moving orders."""

    role = "kitchen"
    follows_items = True

    def on_order_created(self, event: OrderCreated) -> None:
        self._alert_repeatedly(3)
        self.notify("Novo pedido recebido!")

    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        if event.status == OrderStatus.ACCEPTED.value:
            self.alerts.play_once()
            self.notify("Novo pedido na fila!")
        elif event.status == OrderStatus.READY.value:
            self.alerts.play_once()
            self.notify("Pedido pronto para entrega!")


class CourierView(OrderView):
    """Orders one courier is carrying (dispatched or arrived)."""

    role = "motoboy"
    follows_items = True

    def __init__(self, motoboy_id: str, client: OrdersClient, stream: EventStream, **kwargs):
        self.motoboy_id = motoboy_id
        super().__init__(client, stream, **kwargs)

    @property
    def query_key(self) -> QueryKey:
        return (ORDERS_RESOURCE, "motoboy", self.motoboy_id)

    async def fetch_orders(self) -> list[Order]:
        return await self.client.courier_orders(self.motoboy_id)

    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        if event.status == OrderStatus.READY.value:
            self.alerts.play_once()
            self.notify("Nova entrega disponível!")
        elif event.status == OrderStatus.ARRIVED.value:
            self.alerts.play_once()
            self.notify(f"Pedido #{event.order_id[:8]}: entregador chegou")

    def on_order_assigned(self, event: OrderAssigned) -> None:
        if event.motoboy_id != self.motoboy_id:
            return
        self.alerts.play_once()
        self.notify(f"Pedido #{event.order_id[:8]} atribuído a você!")


class CustomerOrdersView(OrderView):
    """One customer's orders, with a notice whenever one of them moves."""

    role = "customer"

    def __init__(self, user_id: str, client: OrdersClient, stream: EventStream, **kwargs):
        self.user_id = user_id
        super().__init__(client, stream, **kwargs)

    @property
    def query_key(self) -> QueryKey:
        return (ORDERS_RESOURCE, "user", self.user_id)

    async def fetch_orders(self) -> list[Order]:
        return await self.client.list_orders(user_id=self.user_id)

    def owns(self, order_id: str) -> bool:
        return any(order.id == order_id for order in self.orders)

    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        if not self.owns(event.order_id):
            return
        self.notify(f"Pedido #{event.order_id[:8]}: {STATUS_LABELS.get(event.status, event.status)}")
