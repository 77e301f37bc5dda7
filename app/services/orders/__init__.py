"""
Order Service Factory

Wires the Order Store, Product Catalog and Live Feed into a single cached
``OrderService`` for the API and the Celery worker.
"""

import logging
from functools import lru_cache

from app.database import async_session_maker
from app.services.catalog import ProductCatalog
from app.services.live_feed import get_live_feed
from app.services.order_store import OrderStore
from app.services.orders.service import OrderService, merge_cart
from app.services.orders.state_machine import (
    NEXT_STATUS,
    check_transition,
    is_terminal,
    next_status,
    parse_status,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> OrderStore:
    return OrderStore(async_session_maker)


@lru_cache()
def get_product_catalog() -> ProductCatalog:
    return ProductCatalog(async_session_maker)


@lru_cache()
def get_order_service() -> OrderService:
    """Get the configured order service."""
    feed = get_live_feed()
    logger.info(f"Order Service: mirroring to {feed.provider_name} live feed")
    return OrderService(
        store=get_order_store(),
        feed=feed,
        catalog=get_product_catalog(),
    )


def reset_order_service() -> None:
    """Clear cached service instances."""
    get_order_service.cache_clear()
    get_order_store.cache_clear()
    get_product_catalog.cache_clear()


__all__ = [
    "get_order_service",
    "get_order_store",
    "get_product_catalog",
    "reset_order_service",
    "OrderService",
    "merge_cart",
    "NEXT_STATUS",
    "check_transition",
    "is_terminal",
    "next_status",
    "parse_status",
]
