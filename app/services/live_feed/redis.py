"""
Redis Live Feed

Mirror used in staging/production. Shared across API processes:

    HSET    {namespace}:orders   <order id> <document json>
    PUBLISH {namespace}:changes  {"id": ..., "customer_id": ...}

Each subscription owns a pub/sub connection and a listener task. On every
change notification that matches its query the listener re-reads the
mirror and delivers a fresh snapshot, so subscribers always see complete
result sets even if they missed intermediate notifications.

Redis pub/sub is fire-and-forget; an API process that is down misses
notifications, but its subscribers get a full snapshot on reconnect.
"""

import asyncio
import json
import logging
from contextlib import suppress
from typing import Optional

import anyio
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.exceptions import MirrorError
from app.services.live_feed.base import (
    BaseLiveFeed,
    Document,
    FeedQuery,
    Snapshot,
    Subscription,
    build_snapshot,
)

logger = logging.getLogger(__name__)


class RedisLiveFeed(BaseLiveFeed):
    """Redis hash + pub/sub live feed."""

    def __init__(
        self,
        redis_url: str,
        namespace: str = "live_feed",
        max_pending: int = 16,
        client: Optional[aioredis.Redis] = None,
    ):
        super().__init__(max_pending=max_pending)
        self._redis = client or aioredis.from_url(redis_url, decode_responses=True)
        self.documents_key = f"{namespace}:orders"
        self.channel = f"{namespace}:changes"
        self._listeners: set[asyncio.Task] = set()

        logger.info(f"RedisLiveFeed initialized (namespace={namespace})")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def publish(self, order_id: str, document: Document) -> None:
        change = {"id": order_id, "customer_id": document.get("customer_id")}
        try:
            await self._redis.hset(self.documents_key, order_id, json.dumps(document))
            await self._redis.publish(self.channel, json.dumps(change))
        except RedisError as e:
            logger.warning(f"Mirror write failed for order {order_id}: {e}")
            raise MirrorError(f"Live feed unavailable for order {order_id}") from e

    async def subscribe(self, query: FeedQuery) -> Subscription:
        pubsub = self._redis.pubsub()
        try:
            # Subscribe before reading so no change slips between the two
            await pubsub.subscribe(self.channel)
            initial = await self._snapshot(query)
        except RedisError as e:
            await pubsub.aclose()
            raise MirrorError("Live feed unavailable, cannot subscribe") from e

        subscription = Subscription(query, self.max_pending)
        subscription.deliver(initial)

        listener = asyncio.create_task(self._listen(pubsub, subscription))
        self._listeners.add(listener)

        async def release(_: Subscription) -> None:
            # Runs while a disconnected SSE response is being cancelled;
            # every await below must complete or the connection leaks
            with anyio.CancelScope(shield=True):
                listener.cancel()
                with suppress(asyncio.CancelledError):
                    await listener
                self._listeners.discard(listener)
                try:
                    await pubsub.unsubscribe(self.channel)
                except RedisError as e:
                    logger.warning(f"Failed to unsubscribe from {self.channel}: {e}")
                finally:
                    await pubsub.aclose()
            logger.info(f"Live feed subscription released ({query.describe()})")

        subscription.on_close = release
        logger.info(f"Live feed subscription opened ({query.describe()})")
        return subscription

    async def _listen(self, pubsub, subscription: Subscription) -> None:
        query = subscription.query
        while not subscription.closed:
            try:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None or message.get("type") != "message":
                    continue
                change = json.loads(message["data"])
                if query.customer_id is not None and change.get("customer_id") != query.customer_id:
                    continue
                subscription.deliver(await self._snapshot(query))
            except RedisError as e:
                logger.error(f"Live feed listener error ({query.describe()}): {e}")
                await asyncio.sleep(1.0)
            except (ValueError, TypeError) as e:
                logger.warning(f"Ignoring malformed change notification: {e}")

    async def _snapshot(self, query: FeedQuery) -> Snapshot:
        raw = await self._redis.hgetall(self.documents_key)
        return build_snapshot((json.loads(value) for value in raw.values()), query)

    async def get_document(self, order_id: str) -> Optional[Document]:
        try:
            raw = await self._redis.hget(self.documents_key, order_id)
        except RedisError as e:
            raise MirrorError(f"Live feed unavailable for order {order_id}") from e
        return json.loads(raw) if raw is not None else None

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.error(f"Live feed health check failed: {e}")
            return False

    async def close(self) -> None:
        for listener in list(self._listeners):
            listener.cancel()
        await self._redis.aclose()
