"""
Order Service

Orchestrates the order lifecycle across the two stores:

    1. Order Store (authoritative)  - written first, failures are fatal
    2. Live Feed (mirror)           - written second, failures are logged

There is no distributed transaction. When a mirror write fails the order
still exists authoritatively; the next status update (which publishes the
full document) or a reconciliation run brings the mirror back in line.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.core.exceptions import MirrorError, ValidationError
from app.models import OrderStatus
from app.schemas import CartItem, OrderCreate, OrderDocument
from app.services.catalog import ProductCatalog
from app.services.live_feed import BaseLiveFeed, FeedQuery, Subscription
from app.services.order_store import OrderStore
from app.services.orders.state_machine import check_transition, next_status, parse_status

logger = logging.getLogger(__name__)


def merge_cart(items: list[CartItem]) -> dict[str, int]:
    """
    Collapse cart entries into ``{product_id: quantity}``.

    Repeated products are summed; first-seen order is kept.

    Raises:
        ValidationError: Empty cart or a quantity below 1
    """
    if not items:
        raise ValidationError("Cart is empty. Add at least one item before ordering.")

    cart: dict[str, int] = {}
    for item in items:
        product_id = item.product_id.strip()
        if not product_id:
            raise ValidationError("Every cart item needs a product id")
        if item.quantity < 1:
            raise ValidationError(
                f"Quantity for product {product_id} must be at least 1 (got {item.quantity})"
            )
        cart[product_id] = cart.get(product_id, 0) + item.quantity
    return cart


def _require(value: str, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


class OrderService:
    """Order creation, status transitions and mirror maintenance."""

    def __init__(self, store: OrderStore, feed: BaseLiveFeed, catalog: ProductCatalog):
        self.store = store
        self.feed = feed
        self.catalog = catalog

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create(self, request: OrderCreate) -> OrderDocument:
        """
        Place a new order.

        Prices come from the catalog; any client-declared total is ignored.

        Raises:
            ValidationError: Malformed request, nothing written
            NotFoundError: Unknown product, nothing written
            PersistenceError: Order Store write failed, nothing mirrored
        """
        customer_id = _require(request.customer_id, "Customer id")
        customer_name = _require(request.customer_name, "Customer name")
        gate = _require(request.gate, "Gate")
        cart = merge_cart(request.items)

        line_items = []
        for product_id, quantity in cart.items():
            product = await self.catalog.get_product(product_id)
            line_items.append({
                "product_id": product.id,
                "name": product.name,
                "quantity": quantity,
                "unit_price": product.price,
            })

        total = round(sum(item["quantity"] * item["unit_price"] for item in line_items), 2)
        if request.total is not None and round(request.total, 2) != total:
            logger.debug(
                f"Ignoring client total {request.total:.2f} for {customer_id}, "
                f"catalog total is {total:.2f}"
            )

        order = await self.store.create_order({
            "customer_id": customer_id,
            "customer_name": customer_name,
            "line_items": line_items,
            "total": total,
            "status": OrderStatus.PENDING,
            "gate": gate,
            "created_at": datetime.now(timezone.utc),
        })
        logger.info(f"Order #{order.id} created for {customer_id} at gate {gate} (${total:.2f})")

        await self._mirror(order)
        return order

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def update_status(self, order_id: str, new_status) -> OrderDocument:
        """
        Move an order to ``new_status``.

        Raises:
            ValidationError: Unknown status value
            NotFoundError: No such order
            InvalidTransitionError: ``new_status`` is not the next status
            PersistenceError: Order Store unavailable
        """
        requested = parse_status(new_status)
        order = await self.store.get_order(order_id)

        if not check_transition(order.status, requested):
            logger.info(f"Order #{order_id} already {order.status.value}, nothing to do")
            return order

        updated = await self.store.update_order(order_id, {"status": requested})
        logger.info(f"Order #{order_id}: {order.status.value} → {requested.value}")

        await self._mirror(updated)
        return updated

    async def advance(self, order_id: str) -> OrderDocument:
        """Move an order one step along the pipeline."""
        order = await self.store.get_order(order_id)
        return await self.update_status(order_id, next_status(order.status))

    # =========================================================================
    # IDENTIFIER-ADDRESSED ACCESS (Order Store only)
    # =========================================================================

    async def get(self, order_id: str) -> OrderDocument:
        return await self.store.get_order(order_id)

    async def delete(self, order_id: str) -> None:
        # Not mirrored: the live feed keeps the last published document
        await self.store.delete_order(order_id)
        logger.info(f"Order #{order_id} deleted")

    async def list_orders(
        self,
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[int, list[OrderDocument]]:
        status_filter = parse_status(status) if status else None
        return await self.store.list_orders(
            customer_id=customer_id,
            status=status_filter,
            skip=skip,
            limit=limit,
        )

    # =========================================================================
    # LIVE FEED
    # =========================================================================

    async def subscribe(self, customer_id: Optional[str] = None) -> Subscription:
        """Staff feed (no customer) or a customer's own orders."""
        return await self.feed.subscribe(FeedQuery(customer_id=customer_id))

    async def _mirror(self, order: OrderDocument) -> bool:
        try:
            await self.feed.publish(order.id, order.model_dump(mode="json"))
            return True
        except MirrorError as e:
            logger.warning(
                f"Order #{order.id} saved but not mirrored to the live feed "
                f"({e.message}); it will be re-mirrored on the next update"
            )
            return False

    async def reconcile(self, order_id: str) -> OrderDocument:
        """
        Re-publish the authoritative record into the live feed.

        Raises:
            NotFoundError: No such order
            MirrorError: The live feed is still unavailable
        """
        order = await self.store.get_order(order_id)
        await self.feed.publish(order.id, order.model_dump(mode="json"))
        logger.info(f"Order #{order_id} reconciled with the live feed")
        return order

    async def reconcile_all(self, batch_size: int = 100) -> int:
        """
        Re-publish every stored order. Returns how many were mirrored.

        Orders created after the sweep starts are left to their own mirror
        write.
        """
        mirrored = failed = 0
        cursor = None
        while True:
            orders = await self.store.list_orders_after(cursor, limit=batch_size)
            if not orders:
                break
            for order in orders:
                if await self._mirror(order):
                    mirrored += 1
                else:
                    failed += 1
            cursor = (orders[-1].created_at, orders[-1].id)

        logger.info(f"Live feed reconciliation: {mirrored} mirrored, {failed} failed")
        return mirrored
