"""Shared Redis connection pool."""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from ..config import Settings
from ..telemetry.logger import get_logger

logger = get_logger(__name__)


def create_redis(settings: Settings) -> redis.Redis:
    """Build a pooled client; connections are opened lazily on first command."""
    pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        decode_responses=True,
    )
    logger.info(
        "Redis pool created",
        max_connections=settings.redis_max_connections,
    )
    return redis.Redis(connection_pool=pool)


async def close_redis(client: redis.Redis) -> None:
    """Close the client and release its pool."""
    await client.aclose()
    await client.connection_pool.disconnect()
    logger.info("Redis pool closed")
