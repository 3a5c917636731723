"""
Request/response client for the order API.

Thin async wrapper over httpx: each method is one endpoint, responses are
validated into the shared pydantic models, and HTTP failures surface as
``httpx.HTTPStatusError`` for the caller to handle.
"""

import logging
from typing import Iterable, Optional

import httpx

from shared.config import get_settings
from shared.delivery_zones import DeliveryFeeResult
from shared.models import Order, OrderCreate, OrderItem, Product

logger = logging.getLogger("orders_client")


class OrdersClient:
    """
    Async client for the order endpoints.

    Example:
        async with OrdersClient("http://127.0.0.1:8000") as client:
            orders = await client.list_orders(status="pending")
            await client.update_status(orders[0].id, "accepted")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url or get_settings().base_url
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def __aenter__(self) -> "OrdersClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            logger.warning(f"{method} {path} -> {response.status_code}")
        response.raise_for_status()
        return response

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_orders(
        self,
        ids: Optional[Iterable[str]] = None,
        user_id: Optional[str] = None,
        motoboy_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Order]:
        params = {}
        if ids is not None:
            params["ids"] = ",".join(ids)
        if user_id:
            params["user_id"] = user_id
        if motoboy_id:
            params["motoboy_id"] = motoboy_id
        if status:
            params["status"] = status
        response = await self._request("GET", "/api/orders", params=params)
        return [Order(**data) for data in response.json()]

    async def get_order(self, order_id: str) -> Order:
        response = await self._request("GET", f"/api/orders/{order_id}")
        return Order(**response.json())

    async def get_order_items(self, order_ids: Iterable[str]) -> list[OrderItem]:
        response = await self._request("GET", "/api/order-items", params={"orderIds": ",".join(order_ids)})
        return [OrderItem(**data) for data in response.json()]

    async def courier_orders(self, motoboy_id: str) -> list[Order]:
        """Orders a courier is carrying right now (dispatched or arrived)."""
        response = await self._request("GET", f"/api/motoboy/{motoboy_id}/orders")
        return [Order(**data) for data in response.json()]

    async def products(self) -> list[Product]:
        response = await self._request("GET", "/api/products")
        return [Product(**data) for data in response.json()]

    async def delivery_fee(self, neighborhood: str) -> DeliveryFeeResult:
        response = await self._request("GET", "/api/delivery-fee", params={"neighborhood": neighborhood})
        return DeliveryFeeResult(**response.json())

    # =========================================================================
    # Commands
    # =========================================================================

    async def create_order(self, request: OrderCreate) -> Order:
        response = await self._request("POST", "/api/orders", json=request.model_dump(mode="json"))
        return Order(**response.json())

    async def update_status(self, order_id: str, status: str) -> Order:
        response = await self._request("PATCH", f"/api/orders/{order_id}/status", json={"status": status})
        return Order(**response.json())

    async def assign_courier(self, order_id: str, motoboy_id: str) -> Order:
        response = await self._request("PATCH", f"/api/orders/{order_id}/assign", json={"motoboyId": motoboy_id})
        return Order(**response.json())

    async def adjust_delivery_fee(self, order_id: str, delivery_fee: float) -> Order:
        response = await self._request(
            "PATCH", f"/api/orders/{order_id}/delivery-fee", json={"deliveryFee": delivery_fee}
        )
        return Order(**response.json())
