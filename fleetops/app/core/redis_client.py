"""
Redis client initialization and connection management.

Redis backs the metrics cache and, when ``CHANGE_FEED_BACKEND=redis``, the
cross-process change feed.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError

from fleetops.app.core.config import settings


def build_redis_client(url: str = None):
    """Create an async Redis client (connections are opened lazily)."""
    return redis.from_url(
        url or settings.redis_url,
        decode_responses=settings.redis_decode_responses,
    )


async def ping_redis(client) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return bool(await client.ping())
    except (RedisError, OSError):
        return False
