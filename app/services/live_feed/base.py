"""
Live Feed Abstract Base Class

The Live Feed mirrors order documents and pushes full result-set snapshots
to subscribers whenever a mirrored write touches their query. Both the
in-memory (development) and Redis (staging/production) implementations
share the subscription machinery defined here.

Design Pattern: Strategy Pattern
    - ``get_live_feed()`` picks the implementation from ENV_MODE
    - The order service only sees ``BaseLiveFeed``

Subscription contract:
    - The first snapshot is the current result set
    - Later snapshots arrive in write order for that subscriber
    - Delivery never blocks the publisher; a full queue drops its oldest
      snapshot since every snapshot is complete
    - ``close()`` ends iteration and releases the feed's resources
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

Document = dict[str, Any]
Snapshot = list[Document]

_CLOSED = object()


@dataclass(frozen=True)
class FeedQuery:
    """
    Subscription filter.

    Attributes:
        customer_id: Only this customer's orders; None means every order
    """
    customer_id: Optional[str] = None

    def matches(self, document: Document) -> bool:
        return self.customer_id is None or document.get("customer_id") == self.customer_id

    def describe(self) -> str:
        return "all orders" if self.customer_id is None else f"customer {self.customer_id}"


def _created_at_key(document: Document) -> datetime:
    return datetime.fromisoformat(str(document["created_at"]).replace("Z", "+00:00"))


def build_snapshot(documents: Iterable[Document], query: FeedQuery) -> Snapshot:
    """Filter documents for ``query``, newest first (ties broken by id)."""
    matching = [doc for doc in documents if query.matches(doc)]
    matching.sort(key=lambda doc: doc["id"])
    matching.sort(key=_created_at_key, reverse=True)
    return matching


class Subscription:
    """
    A cancellable stream of snapshots for one ``FeedQuery``.

    Iterate with ``async for``; use as an async context manager to guarantee
    release on exit, including when the consumer is cancelled.
    """

    def __init__(
        self,
        query: FeedQuery,
        max_pending: int,
        on_close: Optional[Callable[["Subscription"], Awaitable[None]]] = None,
    ):
        self.query = query
        self.on_close = on_close
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, snapshot: Snapshot) -> None:
        """Queue a snapshot without blocking the caller."""
        if self._closed:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(snapshot)

    async def close(self) -> None:
        """Stop delivery and release resources. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        # Wake a consumer blocked in __anext__
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

        if self.on_close is not None:
            await self.on_close(self)
        logger.debug(f"Subscription closed ({self.query.describe()})")

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Snapshot:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        snapshot = await self._queue.get()
        if snapshot is _CLOSED:
            raise StopAsyncIteration
        return snapshot

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class BaseLiveFeed(ABC):
    """Abstract base class for live feed backends."""

    def __init__(self, max_pending: int = 16):
        self.max_pending = max_pending

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the backend name."""
        pass

    @abstractmethod
    async def publish(self, order_id: str, document: Document) -> None:
        """
        Upsert the mirror copy of an order and notify matching subscribers.

        Raises:
            MirrorError: The mirror could not be written
        """
        pass

    @abstractmethod
    async def subscribe(self, query: FeedQuery) -> Subscription:
        """Register interest in ``query`` and return its snapshot stream."""
        pass

    @abstractmethod
    async def get_document(self, order_id: str) -> Optional[Document]:
        """Return the mirrored document, or None if it was never mirrored."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check backend connectivity."""
        pass

    async def close(self) -> None:
        """Release backend connections at shutdown."""
        return None
