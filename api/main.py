"""
FastAPI application for the delivery storefront's order backbone.

This application provides:
1. The push stream of live order updates (/api/orders/sse)
2. Order commands: create, status transition, courier assignment,
   delivery fee adjustment
3. Order queries for the kitchen, courier and customer views
4. Catalog and delivery fee lookups

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.

Key insight:
- Command endpoints only call the OrderingService. Publishing the matching
  event is the service's job, so no endpoint can forget to notify clients.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

from order_events.errors import (
    CourierUnavailableError,
    InvalidTransitionError,
    OrderNotFoundError,
    ProductNotFoundError,
)
from order_events.publisher import EventPublisher, get_publisher
from order_events.services.ordering import OrderingService
from order_events.streaming import StreamConnection, stream_events
from shared.config import get_settings
from shared.data_store import OrderStore, get_order_store
from shared.delivery_zones import DeliveryFeeResult, calculate_delivery_fee, get_grouped_neighborhoods
from shared.models import (
    CourierAssignment,
    DeliveryFeeUpdate,
    Order,
    OrderCreate,
    OrderItem,
    OrderStatus,
    Product,
    StatusUpdate,
)

logger = logging.getLogger("orders_api")

COURIER_ACTIVE_STATUSES = (OrderStatus.DISPATCHED.value, OrderStatus.ARRIVED.value)


# Module-level instances (tests swap them with reset_api_state)
_store: Optional[OrderStore] = None
_publisher: Optional[EventPublisher] = None


def get_store() -> OrderStore:
    """Get the order store instance."""
    global _store
    if _store is None:
        _store = get_order_store()
    return _store


def get_event_publisher() -> EventPublisher:
    """Get the event publisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = get_publisher()
    return _publisher


def get_ordering_service(
    store: OrderStore = Depends(get_store),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> OrderingService:
    return OrderingService(publisher=publisher, store=store)


def reset_api_state(
    store: Optional[OrderStore] = None,
    publisher: Optional[EventPublisher] = None,
) -> None:
    """Reset API state (for testing)."""
    global _store, _publisher
    _store = store
    _publisher = publisher


def _split_csv(value: Optional[str]) -> Optional[list[str]]:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the heartbeat; on shutdown stop it and close every open stream."""
    settings = get_settings()
    publisher = get_event_publisher()
    logger.info("Starting order updates API")
    publisher.start_heartbeat(settings.heartbeat_interval)
    try:
        yield
    finally:
        await publisher.stop_heartbeat()
        publisher.close_all()
        logger.info("Shutting down")


# Create the FastAPI app
app = FastAPI(
    title="Delivery Orders API",
    description="""
    Order management for a delivery storefront, with live status updates.

    ## Live updates

    `GET /api/orders/sse` is a Server-Sent Events stream. Every client gets
    every event: `connected`, `heartbeat`, `order_created`,
    `order_status_changed`, `order_assigned`.

    ## Endpoints

    - `/api/orders*` - Order commands and queries
    - `/api/motoboy/{id}/orders` - A courier's current deliveries
    - `/api/delivery-fee`, `/api/delivery-zones` - Delivery pricing
    - `/api/products` - Catalog
    """,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check(publisher: EventPublisher = Depends(get_event_publisher)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "delivery-orders",
        "open_streams": publisher.connection_count,
    }


# =============================================================================
# Live Updates
# =============================================================================

@app.get("/api/orders/sse", tags=["Live Updates"])
async def order_updates_stream(publisher: EventPublisher = Depends(get_event_publisher)):
    """
    Subscribe to live order updates.

    The first frame is always `connected`. The connection stays open until
    the client goes away or the server shuts down. The connection joins the
    publisher when the body starts streaming.
    """
    connection = StreamConnection(max_queue_size=get_settings().stream_queue_size)

    return StreamingResponse(
        stream_events(connection, publisher),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# =============================================================================
# Order Commands
# =============================================================================

@app.post("/api/orders", response_model=Order, status_code=201, tags=["Orders"])
def create_order(
    request: OrderCreate,
    service: OrderingService = Depends(get_ordering_service),
) -> Order:
    """Place an order. Totals and item prices are computed from the catalog."""
    try:
        return service.create_order(request)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.patch("/api/orders/{order_id}/status", response_model=Order, tags=["Orders"])
def update_order_status(
    order_id: str,
    update: StatusUpdate,
    service: OrderingService = Depends(get_ordering_service),
) -> Order:
    """
    Move an order to a new status.

    Every successful call publishes exactly one `order_status_changed`.
    """
    try:
        return service.update_status(order_id, update.status)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": str(e),
                "currentStatus": e.current_status,
                "allowedTransitions": list(e.allowed),
            },
        )


@app.patch("/api/orders/{order_id}/assign", response_model=Order, tags=["Orders"])
def assign_courier(
    order_id: str,
    assignment: CourierAssignment,
    service: OrderingService = Depends(get_ordering_service),
) -> Order:
    """Hand a ready order to a courier."""
    try:
        return service.assign_courier(order_id, assignment.motoboy_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CourierUnavailableError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.patch("/api/orders/{order_id}/delivery-fee", response_model=Order, tags=["Orders"])
def adjust_delivery_fee(
    order_id: str,
    update: DeliveryFeeUpdate,
    service: OrderingService = Depends(get_ordering_service),
) -> Order:
    """
    Correct the delivery fee of an order (e.g. an unlisted neighborhood).

    The total is recomputed and the first fee is kept as `original_delivery_fee`.
    No push event is sent; clients see the change on their next refetch.
    """
    try:
        return service.adjust_delivery_fee(order_id, update.delivery_fee)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# =============================================================================
# Order Queries
# =============================================================================

@app.get("/api/orders", response_model=list[Order], tags=["Orders"])
def list_orders(
    ids: Optional[str] = Query(default=None, description="Comma-separated order ids"),
    user_id: Optional[str] = None,
    motoboy_id: Optional[str] = None,
    status: Optional[str] = Query(default=None, description="One status or a comma-separated list"),
    store: OrderStore = Depends(get_store),
) -> list[Order]:
    """List orders, newest first."""
    return store.get_orders(
        order_ids=_split_csv(ids),
        user_id=user_id,
        motoboy_id=motoboy_id,
        statuses=_split_csv(status),
    )


@app.get("/api/orders/{order_id}", response_model=Order, tags=["Orders"])
def get_order(order_id: str, store: OrderStore = Depends(get_store)) -> Order:
    order = store.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return order


@app.get("/api/orders/{order_id}/items", response_model=list[OrderItem], tags=["Orders"])
def get_order_items(order_id: str, store: OrderStore = Depends(get_store)) -> list[OrderItem]:
    if store.get_order(order_id) is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return store.get_order_items(order_id)


@app.get("/api/order-items", response_model=list[OrderItem], tags=["Orders"])
def get_items_for_orders(
    order_ids: str = Query(default="", alias="orderIds", description="Comma-separated order ids"),
    store: OrderStore = Depends(get_store),
) -> list[OrderItem]:
    """Items of several orders in one request (kitchen and courier screens)."""
    return store.get_order_items_by_order_ids(_split_csv(order_ids))


@app.get("/api/motoboy/{motoboy_id}/orders", response_model=list[Order], tags=["Couriers"])
def get_courier_orders(motoboy_id: str, store: OrderStore = Depends(get_store)) -> list[Order]:
    """Orders a courier is carrying right now."""
    return store.get_orders(motoboy_id=motoboy_id, statuses=list(COURIER_ACTIVE_STATUSES))


# =============================================================================
# Catalog & Delivery Pricing
# =============================================================================

@app.get("/api/products", response_model=list[Product], tags=["Catalog"])
def list_products(store: OrderStore = Depends(get_store)) -> list[Product]:
    return store.get_products()


@app.get("/api/delivery-fee", response_model=DeliveryFeeResult, tags=["Delivery"])
def get_delivery_fee(neighborhood: str = "") -> DeliveryFeeResult:
    """Delivery fee for a neighborhood; unlisted ones get the fallback fee."""
    return calculate_delivery_fee(neighborhood, get_settings().fallback_delivery_fee)


@app.get("/api/delivery-zones", tags=["Delivery"])
def list_delivery_zones():
    """Neighborhoods grouped by zone, cheapest zone first."""
    return get_grouped_neighborhoods()
