"""
Product Catalog

Menu products. The ordering core only calls ``get_product`` to snapshot
name and price into new orders; the remaining methods back the catalog
administration endpoints. Existing orders are never touched by catalog
changes.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import NotFoundError, PersistenceError
from app.models import Product
from app.schemas import ProductCreate, ProductResponse

logger = logging.getLogger(__name__)


class ProductCatalog:
    """SQL-backed product catalog."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Catalog failed to {action}: {e}")
            raise PersistenceError(f"Catalog unavailable, could not {action}") from e

    async def get_product(self, product_id: str) -> ProductResponse:
        async with self._session("read product") as session:
            product = await session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            return ProductResponse.model_validate(product)

    async def list_products(self) -> list[ProductResponse]:
        async with self._session("list products") as session:
            result = await session.execute(select(Product).order_by(Product.name))
            return [ProductResponse.model_validate(p) for p in result.scalars().all()]

    async def create_product(self, data: ProductCreate) -> ProductResponse:
        async with self._session("create product") as session:
            product = Product(**data.model_dump())
            session.add(product)
            await session.commit()
            logger.info(f"Product {product.id} created: {product.name} (${product.price:.2f})")
            return ProductResponse.model_validate(product)

    async def update_product(self, product_id: str, data: ProductCreate) -> ProductResponse:
        async with self._session("update product") as session:
            product = await session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            for name, value in data.model_dump().items():
                setattr(product, name, value)
            await session.commit()
            logger.info(f"Product {product_id} updated")
            return ProductResponse.model_validate(product)

    async def delete_product(self, product_id: str) -> None:
        async with self._session("delete product") as session:
            product = await session.get(Product, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)
            await session.delete(product)
            await session.commit()
            logger.info(f"Product {product_id} deleted")
