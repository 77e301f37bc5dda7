"""
FastAPI Application Entry Point

Gate Delivery Ordering - airport food delivery backend.

Endpoints:
    - POST /api/orders: Place a gate-delivery order
    - GET /api/orders: Order history
    - GET|DELETE /api/orders/{id}: Single order
    - PUT /api/orders/{id}/status: Move an order to its next status
    - POST /api/orders/{id}/advance: Staff "next step" action
    - POST /api/orders/{id}/reconcile: Re-mirror an order into the live feed
    - GET /api/feed/orders: Live staff feed (Server-Sent Events)
    - GET /api/feed/customers/{customer_id}/orders: Live customer feed (SSE)
    - /api/products: Catalog administration
    - GET /health: System health check
"""

import json
import logging
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings, setup_logging
from app.core.exceptions import OrderingError
from app.database import init_db, engine
from app.schemas import (
    OrderCreate,
    OrderDocument,
    OrderListResponse,
    StatusUpdate,
    ProductCreate,
    ProductResponse,
    ErrorResponse,
    HealthResponse,
)
from app.services.catalog import ProductCatalog
from app.services.live_feed import get_live_feed
from app.services.order_store import OrderStore
from app.services.orders import (
    OrderService,
    get_order_service,
    get_order_store,
    get_product_catalog,
)

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES: dict = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    feed = get_live_feed()
    logger.info(f"✅ Live Feed: {feed.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    logger.info("Shutting down...")
    await feed.close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Airport gate-delivery ordering. Orders are stored authoritatively "
        "and mirrored into a live feed that staff and customers subscribe to."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def format_sse(snapshot: list[dict[str, Any]]) -> str:
    """Encode one feed snapshot as a Server-Sent Event."""
    return f"event: snapshot\ndata: {json.dumps(snapshot)}\n\n"


async def stream_snapshots(
    service: OrderService,
    customer_id: Optional[str] = None,
) -> AsyncIterator[str]:
    """
    Relay a live feed subscription as SSE.

    The subscription is opened inside the generator so it only exists while
    the response is streaming, and is released however the stream ends.
    """
    subscription = await service.subscribe(customer_id=customer_id)
    async with subscription:
        async for snapshot in subscription:
            yield format_sse(snapshot)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"✈️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    store: OrderStore = Depends(get_order_store),
) -> HealthResponse:
    """Verify the Order Store and the live feed are reachable."""
    feed = get_live_feed()

    db_status = "healthy" if await store.health_check() else "unhealthy"
    feed_status = "healthy" if await feed.health_check() else "unhealthy"

    overall = "operational" if db_status == feed_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        live_feed=feed_status,
        live_feed_provider=feed.provider_name,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderDocument,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderDocument:
    """
    Place a gate-delivery order.

    Prices and the total are computed from the catalog; a client-supplied
    total is ignored.
    """
    logger.info(f"Creating order for: {order_data.customer_id} (gate {order_data.gate!r})")
    return await service.create(order_data)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    customer_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Retrieve paginated order history, newest first."""
    total, orders = await service.list_orders(
        customer_id=customer_id,
        status=status,
        skip=skip,
        limit=limit,
    )
    return OrderListResponse(total=total, orders=orders)


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderDocument,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderDocument:
    """Get a specific order by ID."""
    return await service.get(order_id)


@app.put(
    "/api/orders/{order_id}/status",
    response_model=OrderDocument,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: str,
    update: StatusUpdate,
    service: OrderService = Depends(get_order_service),
) -> OrderDocument:
    """Move an order to the next status of the fulfillment pipeline."""
    return await service.update_status(order_id, update.status)


@app.post(
    "/api/orders/{order_id}/advance",
    response_model=OrderDocument,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Advance Order",
)
async def advance_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderDocument:
    """Staff action: pending → preparing → ready → delivered."""
    return await service.advance(order_id)


@app.post(
    "/api/orders/{order_id}/reconcile",
    response_model=OrderDocument,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Re-mirror Order",
)
async def reconcile_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderDocument:
    """Copy the authoritative record into the live feed again."""
    return await service.reconcile(order_id)


@app.delete(
    "/api/orders/{order_id}",
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def delete_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> dict[str, Any]:
    """Delete an order from the Order Store (the live feed is not touched)."""
    await service.delete(order_id)
    return {"success": True, "message": f"Order #{order_id} deleted"}


# =============================================================================
# LIVE FEED ENDPOINTS
# =============================================================================

@app.get("/api/feed/orders", tags=["Live Feed"], summary="Staff Order Feed")
async def staff_feed(
    service: OrderService = Depends(get_order_service),
) -> StreamingResponse:
    """Every order, newest first, re-sent in full on each change."""
    return StreamingResponse(stream_snapshots(service), media_type="text/event-stream")


@app.get(
    "/api/feed/customers/{customer_id}/orders",
    tags=["Live Feed"],
    summary="Customer Order Feed",
)
async def customer_feed(
    customer_id: str,
    service: OrderService = Depends(get_order_service),
) -> StreamingResponse:
    """Only this customer's orders, newest first."""
    # Unauthenticated: the path parameter stands in for the caller's verified
    # identity, so anyone who knows a customer id can open that feed.
    return StreamingResponse(stream_snapshots(service, customer_id), media_type="text/event-stream")


# =============================================================================
# CATALOG ENDPOINTS
# =============================================================================

@app.get("/api/products", response_model=List[ProductResponse], tags=["Products"])
async def list_products(
    catalog: ProductCatalog = Depends(get_product_catalog),
) -> List[ProductResponse]:
    """The menu."""
    return await catalog.list_products()


@app.post(
    "/api/products",
    response_model=ProductResponse,
    status_code=201,
    tags=["Products"],
)
async def create_product(
    product: ProductCreate,
    catalog: ProductCatalog = Depends(get_product_catalog),
) -> ProductResponse:
    return await catalog.create_product(product)


@app.get(
    "/api/products/{product_id}",
    response_model=ProductResponse,
    responses=ERROR_RESPONSES,
    tags=["Products"],
)
async def get_product(
    product_id: str,
    catalog: ProductCatalog = Depends(get_product_catalog),
) -> ProductResponse:
    return await catalog.get_product(product_id)


@app.put(
    "/api/products/{product_id}",
    response_model=ProductResponse,
    responses=ERROR_RESPONSES,
    tags=["Products"],
)
async def update_product(
    product_id: str,
    product: ProductCreate,
    catalog: ProductCatalog = Depends(get_product_catalog),
) -> ProductResponse:
    """Replace a product. Orders already placed keep their snapshot."""
    return await catalog.update_product(product_id, product)


@app.delete(
    "/api/products/{product_id}",
    responses=ERROR_RESPONSES,
    tags=["Products"],
)
async def delete_product(
    product_id: str,
    catalog: ProductCatalog = Depends(get_product_catalog),
) -> dict[str, Any]:
    await catalog.delete_product(product_id)
    return {"success": True, "message": f"Product {product_id} deleted"}


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_exception_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Translate domain failures into their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
