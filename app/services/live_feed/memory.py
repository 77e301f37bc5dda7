"""
In-Memory Live Feed

Process-local mirror used in development mode and in tests. Documents live
in a dict and snapshots are fanned out directly to subscriber queues.

Behavior:
    - Optional simulated mirror failures (``failure_rate``), like the other
      development backends, to exercise the eventual-consistency path
    - Documents are copied on the way in and out so callers cannot mutate
      the mirror
"""

import copy
import logging
import random
from typing import Optional

from app.core.exceptions import MirrorError
from app.services.live_feed.base import (
    BaseLiveFeed,
    Document,
    FeedQuery,
    Subscription,
    build_snapshot,
)

logger = logging.getLogger(__name__)


class InMemoryLiveFeed(BaseLiveFeed):
    """In-process live feed for development."""

    def __init__(self, max_pending: int = 16, failure_rate: float = 0.0):
        super().__init__(max_pending=max_pending)
        self.failure_rate = failure_rate
        self._documents: dict[str, Document] = {}
        self._subscriptions: set[Subscription] = set()

        logger.info(
            f"InMemoryLiveFeed initialized "
            f"(failure_rate={failure_rate:.0%}, max_pending={max_pending})"
        )

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def publish(self, order_id: str, document: Document) -> None:
        if self._should_fail():
            logger.warning(f"Mirror write failed (simulated) for order {order_id}")
            raise MirrorError(f"Simulated live feed failure for order {order_id}")

        self._documents[order_id] = copy.deepcopy(document)

        for subscription in list(self._subscriptions):
            if subscription.query.matches(document):
                subscription.deliver(self._snapshot(subscription.query))

    async def subscribe(self, query: FeedQuery) -> Subscription:
        subscription = Subscription(query, self.max_pending, on_close=self._release)
        self._subscriptions.add(subscription)
        subscription.deliver(self._snapshot(query))
        logger.info(f"Live feed subscription opened ({query.describe()})")
        return subscription

    async def _release(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)
        logger.info(f"Live feed subscription released ({subscription.query.describe()})")

    def _snapshot(self, query: FeedQuery) -> list[Document]:
        return copy.deepcopy(build_snapshot(self._documents.values(), query))

    async def get_document(self, order_id: str) -> Optional[Document]:
        document = self._documents.get(order_id)
        return copy.deepcopy(document) if document is not None else None

    async def health_check(self) -> bool:
        return True
