"""
Tests for OrdersClient against the real app, over httpx's ASGI transport.
"""

import asyncio

import httpx
import pytest

from api.main import app, reset_api_state
from order_client.http_client import OrdersClient
from shared.models import OrderCreate, OrderItemRequest


@pytest.fixture
def run_client(order_store, publisher):
    """Run a coroutine function with an OrdersClient wired to the app."""
    reset_api_state(store=order_store, publisher=publisher)

    def run(scenario):
        async def main():
            transport = httpx.ASGITransport(app=app)
            async with OrdersClient(client=httpx.AsyncClient(transport=transport, base_url="http://orders.test")) as client:
                return await scenario(client)

        return asyncio.run(main())

    yield run
    reset_api_state(None, None)


class TestOrdersClient:
    """Tests for the request/response client."""

    def test_list_and_get(self, run_client, pending_order_id):
        async def scenario(client: OrdersClient):
            mine = await client.list_orders(user_id="user-001", status="pending")
            one = await client.get_order(pending_order_id)
            return mine, one

        mine, one = run_client(scenario)

        assert [o.id for o in mine] == [pending_order_id]
        assert one.total == 43.00

    def test_items_and_courier_orders(self, run_client, active_motoboy_id):
        async def scenario(client: OrdersClient):
            items = await client.get_order_items(["ord-001", "ord-002"])
            deliveries = await client.courier_orders(active_motoboy_id)
            return items, deliveries

        items, deliveries = run_client(scenario)

        assert {i.order_id for i in items} == {"ord-001", "ord-002"}
        assert [o.id for o in deliveries] == ["ord-003"]

    def test_full_delivery_flow(self, run_client, publisher, make_connection, active_motoboy_id):
        """Create, walk to ready, assign, deliver: one event per step."""
        conn = make_connection()
        publisher.subscribe(conn)

        async def scenario(client: OrdersClient):
            order = await client.create_order(OrderCreate(
                user_id="user-9",
                neighborhood="Moema",
                items=[OrderItemRequest(product_id="prod-007", quantity=12)],
            ))
            for status in ("accepted", "preparing", "ready"):
                await client.update_status(order.id, status)
            await client.assign_courier(order.id, active_motoboy_id)
            await client.update_status(order.id, "arrived")
            return await client.update_status(order.id, "delivered")

        delivered = run_client(scenario)

        assert delivered.status == "delivered"
        assert delivered.delivery_fee == 15.00
        assert all(stamp is not None for stamp in delivered.stage_timestamps())
        assert [e.type for e in conn.domain_events()] == [
            "order_created",
            "order_status_changed",
            "order_status_changed",
            "order_status_changed",
            "order_assigned",
            "order_status_changed",
            "order_status_changed",
        ]

    def test_errors_raise_http_status_error(self, run_client, pending_order_id):
        async def scenario(client: OrdersClient):
            with pytest.raises(httpx.HTTPStatusError) as exc_info:
                await client.update_status(pending_order_id, "delivered")
            return exc_info.value.response.status_code

        assert run_client(scenario) == 400

    def test_settle_unlisted_delivery_fee(self, run_client):
        async def scenario(client: OrdersClient):
            order = await client.create_order(OrderCreate(
                user_id="user-9",
                neighborhood="Atlantida",
                items=[OrderItemRequest(product_id="prod-007", quantity=2)],
            ))
            adjusted = await client.adjust_delivery_fee(order.id, 11.0)
            return order, adjusted

        order, adjusted = run_client(scenario)

        assert order.delivery_fee_unlisted is True
        assert order.total == 33.0
        assert adjusted.original_delivery_fee == 20.0
        assert adjusted.total == 24.0

    def test_delivery_fee_and_products(self, run_client):
        async def scenario(client: OrdersClient):
            return await client.delivery_fee("Brooklin"), await client.products()

        fee, products = run_client(scenario)

        assert fee.zone_code == "D"
        assert fee.fee == 20.0
        assert len(products) == 7
