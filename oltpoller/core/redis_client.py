from redis import asyncio as aioredis
from redis.asyncio import Redis

from .config import settings


# Redis client instance
_redis_client: Redis | None = None


async def get_redis_client() -> Redis:
    """
    Get or create the Redis client instance.

    Returns:
        Redis client
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True
        )

    return _redis_client


async def check_redis_health() -> bool:
    """
    Check Redis connectivity.

    Returns:
        True if Redis is accessible, False otherwise
    """
    try:
        client = await get_redis_client()
        await client.ping()
        return True
    except Exception:
        return False


async def close_redis():
    """Close the Redis connection (call on shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
