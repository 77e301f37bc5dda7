"""
Order Store

Authoritative, durable record of orders on top of the SQLAlchemy async
session factory. Every method opens its own short-lived session, returns
``OrderDocument`` objects and translates database failures into
``PersistenceError``.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import NotFoundError, PersistenceError, ValidationError
from app.models import Order, OrderStatus
from app.schemas import OrderDocument

logger = logging.getLogger(__name__)

# Everything else on an order is an immutable snapshot
MUTABLE_FIELDS = frozenset({"status"})


class OrderStore:
    """SQL-backed Order Store."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Order Store failed to {action}: {e}")
            raise PersistenceError(f"Order store unavailable, could not {action}") from e

    async def create_order(self, record: dict[str, Any]) -> OrderDocument:
        """Insert a new order; the store assigns the identifier."""
        async with self._session("create order") as session:
            order = Order(**record)
            session.add(order)
            await session.commit()
            return OrderDocument.model_validate(order)

    async def get_order(self, order_id: str) -> OrderDocument:
        async with self._session("read order") as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            return OrderDocument.model_validate(order)

    async def update_order(self, order_id: str, fields: dict[str, Any]) -> OrderDocument:
        """Apply a partial update to the mutable fields of an order."""
        immutable = set(fields) - MUTABLE_FIELDS
        if immutable:
            raise ValidationError(f"Order fields cannot be changed: {sorted(immutable)}")

        async with self._session("update order") as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            for name, value in fields.items():
                setattr(order, name, value)
            await session.commit()
            return OrderDocument.model_validate(order)

    async def delete_order(self, order_id: str) -> None:
        async with self._session("delete order") as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise NotFoundError("Order", order_id)
            await session.delete(order)
            await session.commit()

    async def list_orders(
        self,
        customer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[int, list[OrderDocument]]:
        """Order history, newest first."""
        query = select(Order).order_by(Order.created_at.desc(), Order.id)
        count_query = select(func.count(Order.id))

        if customer_id is not None:
            query = query.where(Order.customer_id == customer_id)
            count_query = count_query.where(Order.customer_id == customer_id)
        if status is not None:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        async with self._session("list orders") as session:
            total = (await session.execute(count_query)).scalar() or 0
            result = await session.execute(query.offset(skip).limit(limit))
            orders = [OrderDocument.model_validate(o) for o in result.scalars().all()]
        return total, orders

    async def list_orders_after(
        self,
        cursor: Optional[tuple[datetime, str]] = None,
        limit: int = 100,
    ) -> list[OrderDocument]:
        """
        Keyset page over every order, in ``list_orders`` order.

        ``cursor`` is the ``(created_at, id)`` of the last order already
        seen. Inserts and deletes elsewhere in the table do not shift pages.
        """
        query = select(Order).order_by(Order.created_at.desc(), Order.id).limit(limit)
        if cursor is not None:
            created_at, order_id = cursor
            query = query.where(
                or_(
                    Order.created_at < created_at,
                    and_(Order.created_at == created_at, Order.id > order_id),
                )
            )

        async with self._session("page orders") as session:
            result = await session.execute(query)
            return [OrderDocument.model_validate(o) for o in result.scalars().all()]

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(select(func.count(Order.id)))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Order Store health check failed: {e}")
            return False
