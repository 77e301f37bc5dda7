"""Test fixtures for the ordering core."""

import os

# Must be set before any app module reads the settings
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LIVE_FEED_FAILURE_RATE"] = "0"

import pytest
import pytest_asyncio

from app.database import build_engine, build_session_maker, init_db
from app.schemas import CartItem, OrderCreate, ProductCreate
from app.services.catalog import ProductCatalog
from app.services.live_feed import InMemoryLiveFeed
from app.services.order_store import OrderStore
from app.services.orders import OrderService


@pytest_asyncio.fixture
async def session_maker():
    """Fresh in-memory Order Store per test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def feed():
    return InMemoryLiveFeed(max_pending=4)


@pytest.fixture
def store(session_maker):
    return OrderStore(session_maker)


@pytest.fixture
def catalog(session_maker):
    return ProductCatalog(session_maker)


@pytest.fixture
def service(store, feed, catalog):
    return OrderService(store=store, feed=feed, catalog=catalog)


@pytest_asyncio.fixture
async def products(catalog):
    """Two menu items: A at 5.00 and B at 3.00."""
    product_a = await catalog.create_product(ProductCreate(name="Cheese Sandwich", price=5.00))
    product_b = await catalog.create_product(ProductCreate(name="Espresso", price=3.00))
    return {"a": product_a, "b": product_b}


@pytest.fixture
def make_order():
    """Build an order request; quantities keyed by product."""

    def _make(cart, customer_id="alice@example.com", customer_name="Alice", gate="B12", **extra):
        return OrderCreate(
            customer_id=customer_id,
            customer_name=customer_name,
            items=[CartItem(product_id=p.id, quantity=q) for p, q in cart],
            gate=gate,
            **extra,
        )

    return _make
