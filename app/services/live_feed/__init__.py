"""
Live Feed Factory

Returns the in-memory or Redis live feed based on ENV_MODE.

    - ENV_MODE=development → InMemoryLiveFeed (single process, no Redis)
    - ENV_MODE=staging / production → RedisLiveFeed
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.live_feed.base import (
    BaseLiveFeed,
    FeedQuery,
    Subscription,
    build_snapshot,
)
from app.services.live_feed.memory import InMemoryLiveFeed
from app.services.live_feed.redis import RedisLiveFeed

logger = logging.getLogger(__name__)


@lru_cache()
def get_live_feed() -> BaseLiveFeed:
    """Get the configured live feed instance."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Live Feed: Using InMemoryLiveFeed (development mode)")
        return InMemoryLiveFeed(
            max_pending=settings.live_feed_max_pending,
            failure_rate=settings.live_feed_failure_rate,
        )
    else:
        logger.info(f"Live Feed: Using RedisLiveFeed ({settings.env_mode.value} mode)")
        return RedisLiveFeed(
            settings.redis_url,
            namespace=settings.live_feed_namespace,
            max_pending=settings.live_feed_max_pending,
        )


def reset_live_feed() -> None:
    """Clear the cached live feed instance."""
    get_live_feed.cache_clear()
    logger.debug("Live feed cache cleared")


__all__ = [
    "get_live_feed",
    "reset_live_feed",
    "BaseLiveFeed",
    "FeedQuery",
    "Subscription",
    "build_snapshot",
    "InMemoryLiveFeed",
    "RedisLiveFeed",
]
