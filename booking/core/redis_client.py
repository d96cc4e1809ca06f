"""Redis client configuration and utilities."""

import redis.asyncio as redis

from booking.config import Settings


def create_redis_client(settings: Settings) -> redis.Redis:
    """
    Create the Redis client used by the tracking store and the event streams.

    Args:
        settings: Application settings

    Returns:
        Redis client instance
    """
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        username=settings.redis_username,
        password=settings.redis_password or None,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
    )


async def check_redis_connection(client: redis.Redis) -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        await client.ping()
        return True
    except redis.RedisError:
        return False


async def close_redis_connection(client: redis.Redis) -> None:
    """Close Redis connection."""
    await client.aclose()
