"""Tests for the Redis live feed against a mocked client."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import anyio
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.exceptions import MirrorError
from app.services.live_feed import FeedQuery, RedisLiveFeed


def make_document(order_id, customer_id="alice@example.com", created_at="2026-10-19T10:00:00Z"):
    return {
        "id": order_id,
        "customer_id": customer_id,
        "customer_name": "Alice",
        "line_items": [],
        "total": 5.0,
        "status": "pending",
        "gate": "C4",
        "created_at": created_at,
    }


class FakePubSub:
    """Pub/sub connection fed from an asyncio.Queue."""

    def __init__(self):
        self.messages: asyncio.Queue = asyncio.Queue()
        self.subscribe = AsyncMock()
        self.unsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def get_message(self, ignore_subscribe_messages=False, timeout=None):
        try:
            return await asyncio.wait_for(self.messages.get(), 0.05)
        except asyncio.TimeoutError:
            return None

    def notify(self, order_id, customer_id):
        self.messages.put_nowait(
            {"type": "message", "data": json.dumps({"id": order_id, "customer_id": customer_id})}
        )


@pytest.fixture
def documents():
    """Backing store for the mocked hash."""
    return {}


@pytest.fixture
def pubsub():
    return FakePubSub()


@pytest.fixture
def client(documents, pubsub):
    redis = MagicMock()
    redis.pubsub = MagicMock(return_value=pubsub)
    redis.publish = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()

    async def hset(key, field, value):
        documents[field] = value
        return 1

    async def hget(key, field):
        return documents.get(field)

    async def hgetall(key):
        return dict(documents)

    redis.hset = AsyncMock(side_effect=hset)
    redis.hget = AsyncMock(side_effect=hget)
    redis.hgetall = AsyncMock(side_effect=hgetall)
    return redis


@pytest.fixture
def feed(client):
    return RedisLiveFeed("redis://unused:6379/0", namespace="test", client=client)


@pytest.mark.asyncio
async def test_publish_writes_document_then_notifies(feed, client):
    document = make_document("o1")

    await feed.publish("o1", document)

    client.hset.assert_awaited_once_with("test:orders", "o1", json.dumps(document))
    client.publish.assert_awaited_once_with(
        "test:changes", json.dumps({"id": "o1", "customer_id": "alice@example.com"})
    )


@pytest.mark.asyncio
async def test_publish_failure_raises_mirror_error(feed, client):
    client.hset.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(MirrorError):
        await feed.publish("o1", make_document("o1"))

    client.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_document(feed):
    await feed.publish("o1", make_document("o1"))

    assert await feed.get_document("o1") == make_document("o1")
    assert await feed.get_document("missing") is None


@pytest.mark.asyncio
async def test_subscribe_starts_with_filtered_snapshot(feed, pubsub):
    await feed.publish("a1", make_document("a1", created_at="2026-10-19T10:00:00Z"))
    await feed.publish("b1", make_document("b1", customer_id="bob@example.com"))
    await feed.publish("a2", make_document("a2", created_at="2026-10-19T10:10:00Z"))

    async with await feed.subscribe(FeedQuery(customer_id="alice@example.com")) as subscription:
        snapshot = await asyncio.wait_for(subscription.__anext__(), 0.5)

    pubsub.subscribe.assert_awaited_once_with("test:changes")
    assert [doc["id"] for doc in snapshot] == ["a2", "a1"]


@pytest.mark.asyncio
async def test_listener_delivers_matching_changes(feed, pubsub):
    async with await feed.subscribe(FeedQuery(customer_id="alice@example.com")) as subscription:
        assert await asyncio.wait_for(subscription.__anext__(), 0.5) == []

        await feed.publish("b1", make_document("b1", customer_id="bob@example.com"))
        pubsub.notify("b1", "bob@example.com")
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(subscription.__anext__(), 0.2)

        await feed.publish("a1", make_document("a1"))
        pubsub.notify("a1", "alice@example.com")
        snapshot = await asyncio.wait_for(subscription.__anext__(), 0.5)

    assert [doc["id"] for doc in snapshot] == ["a1"]


@pytest.mark.asyncio
async def test_malformed_notifications_are_ignored(feed, pubsub):
    async with await feed.subscribe(FeedQuery()) as subscription:
        await asyncio.wait_for(subscription.__anext__(), 0.5)

        pubsub.messages.put_nowait({"type": "message", "data": "not json"})
        await feed.publish("o1", make_document("o1"))
        pubsub.notify("o1", "alice@example.com")

        snapshot = await asyncio.wait_for(subscription.__anext__(), 0.5)

    assert [doc["id"] for doc in snapshot] == ["o1"]


@pytest.mark.asyncio
async def test_close_releases_pubsub(feed, pubsub):
    subscription = await feed.subscribe(FeedQuery())

    await subscription.close()

    pubsub.unsubscribe.assert_awaited_once_with("test:changes")
    pubsub.aclose.assert_awaited_once()
    assert feed._listeners == set()


@pytest.mark.asyncio
async def test_cancelled_consumer_still_releases_pubsub(feed, pubsub):
    """A disconnected SSE viewer is torn down by cancelling its task group."""
    finished = []

    async def slow_unsubscribe(channel):
        await asyncio.sleep(0)
        finished.append(("unsubscribe", channel))

    async def slow_aclose():
        await asyncio.sleep(0)
        finished.append(("aclose",))

    pubsub.unsubscribe.side_effect = slow_unsubscribe
    pubsub.aclose.side_effect = slow_aclose
    streaming = anyio.Event()

    async def consume():
        async with await feed.subscribe(FeedQuery()) as subscription:
            async for _ in subscription:
                streaming.set()

    async with anyio.create_task_group() as tg:
        tg.start_soon(consume)
        await streaming.wait()
        tg.cancel_scope.cancel()

    assert finished == [("unsubscribe", "test:changes"), ("aclose",)]
    assert feed._listeners == set()


@pytest.mark.asyncio
async def test_subscribe_failure_closes_pubsub(feed, client, pubsub):
    client.hgetall.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(MirrorError):
        await feed.subscribe(FeedQuery())

    pubsub.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_health_check(feed, client):
    assert await feed.health_check() is True

    client.ping.side_effect = RedisConnectionError("connection refused")
    assert await feed.health_check() is False
