"""
Celery Tasks
Background reconciliation of the live feed with the Order Store.

Tasks run in worker processes with a fresh event loop per call, so each run
builds its own engine and Redis live feed connection and disposes of them
after.

In development the live feed is an in-memory mirror owned by the API
process, out of reach of the worker. Reconciliation tasks skip there; use
``POST /api/orders/{id}/reconcile`` against the API instead.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from app.celery_worker import celery_app
from app.core.config import get_settings
from app.core.exceptions import MirrorError
from app.database import build_engine, build_session_maker
from app.services.catalog import ProductCatalog
from app.services.live_feed import RedisLiveFeed
from app.services.order_store import OrderStore
from app.services.orders import OrderService

logger = logging.getLogger(__name__)
settings = get_settings()


def _skipped(task_id: str, task_name: str) -> Optional[dict]:
    """Result for tasks that cannot reach the live feed, else None."""
    if not settings.is_development:
        return None
    logger.warning(
        f"Task {task_id}: {task_name} skipped, the development live feed "
        f"lives in the API process (use POST /api/orders/{{id}}/reconcile)"
    )
    return {
        'success': False,
        'skipped': True,
        'reason': 'live feed is in-process in development mode',
        'task_id': task_id,
    }


@asynccontextmanager
async def worker_order_service() -> AsyncIterator[OrderService]:
    """Order service bound to the current event loop."""
    engine = build_engine(settings.database_url, echo=settings.database_echo)
    session_maker = build_session_maker(engine)
    feed = RedisLiveFeed(
        settings.redis_url,
        namespace=settings.live_feed_namespace,
        max_pending=settings.live_feed_max_pending,
    )

    try:
        yield OrderService(
            store=OrderStore(session_maker),
            feed=feed,
            catalog=ProductCatalog(session_maker),
        )
    finally:
        await feed.close()
        await engine.dispose()


async def _reconcile_all() -> int:
    async with worker_order_service() as service:
        return await service.reconcile_all()


async def _reconcile_order(order_id: str) -> dict:
    async with worker_order_service() as service:
        order = await service.reconcile(order_id)
        return order.model_dump(mode="json")


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def reconcile_live_feed(self) -> dict:
    """
    Re-publish every stored order into the live feed.

    Returns:
        dict: Number of mirrored orders and timing
    """
    task_id = self.request.id
    skipped = _skipped(task_id, "reconcile_live_feed")
    if skipped:
        return skipped

    start_time = time.time()

    mirrored = asyncio.run(_reconcile_all())

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {task_id}: reconciled {mirrored} orders in {elapsed}s")
    return {
        'success': True,
        'mirrored': mirrored,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    retry_backoff=True
)
def reconcile_order(self, order_id: str) -> dict:
    """Re-publish a single order; retried while the live feed is down."""
    skipped = _skipped(self.request.id, "reconcile_order")
    if skipped:
        return skipped

    try:
        document = asyncio.run(_reconcile_order(order_id))
    except MirrorError as e:
        logger.warning(f"Task {self.request.id}: order #{order_id} still not mirrored - {e.message}")
        raise self.retry(exc=e)

    return {'success': True, 'order': document}


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
