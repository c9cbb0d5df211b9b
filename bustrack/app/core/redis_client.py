"""
Shared Redis client.

Redis holds the live bus location, the driver registry, the token
blacklist and the Pub/Sub channels that carry change notifications.
Subscriptions take their own connections from the same pool.
"""

import logging

import redis.asyncio as redis
from bustrack.app.core.config import settings

logger = logging.getLogger("bustrack.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """FastAPI dependency returning the shared client."""
    return redis_client


async def ping_redis() -> bool:
    """True when Redis answers a PING."""
    try:
        return await redis_client.ping()
    except redis.RedisError as e:
        logger.warning("Redis ping failed: %s", e)
        return False


async def close_redis() -> None:
    """Release the connection pool on shutdown."""
    await redis_client.aclose()
