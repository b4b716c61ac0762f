"""
Redis Connection

Async Redis client backing the browser session store.
"""

import logging

from redis.asyncio import Redis, from_url

from portal.core.config import settings

logger = logging.getLogger(__name__)

# Redis client instance
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Open the Redis connection used for session storage.

    Call this on application startup. Raises if the server cannot be reached.
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    return redis_client


async def get_redis() -> Redis | None:
    """
    Get the Redis client, or None when it was never initialized.

    Outside production the session layer falls back to an in-process
    store when this returns None.
    """
    return redis_client


def is_redis_available() -> bool:
    """Check if the Redis client is initialized."""
    return redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")
