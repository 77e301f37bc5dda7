"""Tests for live feed subscriptions (in-memory backend) and SSE relay."""

import asyncio
import json

import pytest

from app.core.exceptions import MirrorError
from app.main import format_sse, stream_snapshots
from app.services.live_feed import FeedQuery, InMemoryLiveFeed, build_snapshot


def make_document(order_id, customer_id="alice@example.com", created_at="2026-10-19T10:00:00Z", status="pending"):
    return {
        "id": order_id,
        "customer_id": customer_id,
        "customer_name": customer_id.split("@")[0].title(),
        "line_items": [{"product_id": "p1", "name": "Espresso", "quantity": 1, "unit_price": 3.0}],
        "total": 3.0,
        "status": status,
        "gate": "B12",
        "created_at": created_at,
    }


async def next_snapshot(subscription, timeout=0.5):
    return await asyncio.wait_for(subscription.__anext__(), timeout)


async def assert_no_snapshot(subscription, timeout=0.05):
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(subscription.__anext__(), timeout)


def test_snapshot_is_newest_first():
    documents = [
        make_document("b", created_at="2026-10-19T10:00:00Z"),
        make_document("c", created_at="2026-10-19T10:00:00.500000Z"),
        make_document("a", created_at="2026-10-19T10:00:00Z"),
        make_document("d", created_at="2026-10-19T09:59:59.999999Z"),
    ]

    snapshot = build_snapshot(documents, FeedQuery())

    assert [doc["id"] for doc in snapshot] == ["c", "a", "b", "d"]


@pytest.mark.asyncio
async def test_first_snapshot_is_current_state():
    feed = InMemoryLiveFeed()
    await feed.publish("o1", make_document("o1"))

    async with await feed.subscribe(FeedQuery()) as subscription:
        snapshot = await next_snapshot(subscription)

    assert [doc["id"] for doc in snapshot] == ["o1"]


@pytest.mark.asyncio
async def test_publish_pushes_full_snapshots():
    feed = InMemoryLiveFeed()

    async with await feed.subscribe(FeedQuery()) as subscription:
        assert await next_snapshot(subscription) == []

        await feed.publish("o1", make_document("o1", created_at="2026-10-19T10:00:00Z"))
        await feed.publish("o2", make_document("o2", created_at="2026-10-19T10:05:00Z"))
        await feed.publish("o1", make_document("o1", created_at="2026-10-19T10:00:00Z", status="preparing"))

        first = await next_snapshot(subscription)
        second = await next_snapshot(subscription)
        third = await next_snapshot(subscription)

    assert [doc["id"] for doc in first] == ["o1"]
    assert [doc["id"] for doc in second] == ["o2", "o1"]
    assert [(doc["id"], doc["status"]) for doc in third] == [("o2", "pending"), ("o1", "preparing")]


@pytest.mark.asyncio
async def test_customer_feed_only_sees_own_orders():
    feed = InMemoryLiveFeed()
    await feed.publish("bob-1", make_document("bob-1", customer_id="bob@example.com"))

    async with await feed.subscribe(FeedQuery(customer_id="alice@example.com")) as subscription:
        assert await next_snapshot(subscription) == []

        await feed.publish("bob-2", make_document("bob-2", customer_id="bob@example.com"))
        await assert_no_snapshot(subscription)

        await feed.publish("alice-1", make_document("alice-1"))
        snapshot = await next_snapshot(subscription)

    assert [doc["id"] for doc in snapshot] == ["alice-1"]
    assert all(doc["customer_id"] == "alice@example.com" for doc in snapshot)


@pytest.mark.asyncio
async def test_close_stops_delivery_and_releases():
    feed = InMemoryLiveFeed()
    subscription = await feed.subscribe(FeedQuery())
    assert feed.subscriber_count == 1

    await subscription.close()
    await subscription.close()
    await feed.publish("o1", make_document("o1"))

    assert feed.subscriber_count == 0
    assert subscription.closed
    assert [snapshot async for snapshot in subscription] == []


@pytest.mark.asyncio
async def test_close_wakes_a_waiting_consumer():
    feed = InMemoryLiveFeed()
    subscription = await feed.subscribe(FeedQuery())
    await next_snapshot(subscription)

    async def consume():
        return [snapshot async for snapshot in subscription]

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    await subscription.close()

    assert await asyncio.wait_for(consumer, 0.5) == []


@pytest.mark.asyncio
async def test_context_manager_releases_on_error():
    feed = InMemoryLiveFeed()

    with pytest.raises(RuntimeError):
        async with await feed.subscribe(FeedQuery()):
            raise RuntimeError("viewer crashed")

    assert feed.subscriber_count == 0


@pytest.mark.asyncio
async def test_slow_subscriber_does_not_block_publisher():
    """A full queue drops its oldest snapshot; the newest is always kept."""
    feed = InMemoryLiveFeed(max_pending=2)
    slow = await feed.subscribe(FeedQuery())
    fast = await feed.subscribe(FeedQuery())
    await next_snapshot(fast)

    for n in range(5):
        await feed.publish(f"o{n}", make_document(f"o{n}", created_at=f"2026-10-19T10:0{n}:00Z"))
        await next_snapshot(fast)

    received = [await next_snapshot(slow), await next_snapshot(slow)]
    await assert_no_snapshot(slow)

    assert slow.dropped == 4
    assert len(received[-1]) == 5
    assert len(received[0]) == 4

    await slow.close()
    await fast.close()


@pytest.mark.asyncio
async def test_simulated_failures_raise_mirror_error():
    feed = InMemoryLiveFeed(failure_rate=1.0)

    with pytest.raises(MirrorError):
        await feed.publish("o1", make_document("o1"))

    assert await feed.get_document("o1") is None


@pytest.mark.asyncio
async def test_mirror_cannot_be_mutated_by_callers():
    feed = InMemoryLiveFeed()
    document = make_document("o1")
    await feed.publish("o1", document)

    document["status"] = "delivered"

    assert (await feed.get_document("o1"))["status"] == "pending"


# =============================================================================
# THROUGH THE ORDER SERVICE
# =============================================================================

@pytest.mark.asyncio
async def test_status_update_reaches_subscribers(service, products, make_order):
    order = await service.create(make_order([(products["a"], 2), (products["b"], 1)]))

    async with await service.subscribe() as staff:
        initial = await next_snapshot(staff)
        await service.update_status(order.id, "preparing")
        updated = await next_snapshot(staff)

    stored = await service.get(order.id)
    assert initial[0]["status"] == "pending"
    assert updated == [stored.model_dump(mode="json")]
    assert updated[0]["status"] == "preparing"


@pytest.mark.asyncio
async def test_customer_subscription_through_service(service, products, make_order):
    async with await service.subscribe(customer_id="alice@example.com") as tracking:
        assert await next_snapshot(tracking) == []

        await service.create(make_order([(products["a"], 1)], customer_id="bob@example.com"))
        await assert_no_snapshot(tracking)

        mine = await service.create(make_order([(products["b"], 1)]))
        snapshot = await next_snapshot(tracking)

    assert [doc["id"] for doc in snapshot] == [mine.id]


# =============================================================================
# SERVER-SENT EVENTS
# =============================================================================

def test_format_sse():
    event = format_sse([make_document("o1")])

    assert event.startswith("event: snapshot\ndata: ")
    assert event.endswith("\n\n")
    assert json.loads(event.split("data: ", 1)[1])[0]["id"] == "o1"


@pytest.mark.asyncio
async def test_stream_releases_subscription_when_closed(service, feed, products, make_order):
    await service.create(make_order([(products["a"], 1)]))
    stream = stream_snapshots(service, customer_id="alice@example.com")

    first = await stream.__anext__()
    assert feed.subscriber_count == 1
    assert "alice@example.com" in first

    await stream.aclose()
    assert feed.subscriber_count == 0
