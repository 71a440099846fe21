"""
Redis client lifecycle for the conversation store.

Provides:
- Async Redis client with connection pooling
- Explicit open/close owned by the application lifespan
- fakeredis for the test environment
- Credential-free URL rendering for logs
"""

from typing import Optional

import redis.asyncio as redis
import structlog

from libs.common.errors import ConfigurationError, UpstreamUnavailableError

logger = structlog.get_logger(__name__)

MAX_CONNECTIONS = 20


def redact_url(redis_url: str) -> str:
    """Strip credentials from a Redis URL before logging it."""
    if "@" in redis_url:
        return redis_url.split("@")[-1]
    return redis_url.split("//")[-1]


async def create_redis_client(redis_url: Optional[str], use_fake: bool = False) -> redis.Redis:
    """
    Create an async Redis client with connection pooling and verify it.

    Args:
        redis_url: Connection URL (``redis://`` or ``rediss://``)
        use_fake: If True, return an in-process fakeredis client instead

    Returns:
        Connected Redis client (responses decoded to ``str``)

    Raises:
        ConfigurationError: If no URL is configured
        UpstreamUnavailableError: If the server does not answer a ping
    """
    if use_fake:
        from fakeredis import aioredis as fakeredis

        logger.info("Using fakeredis for conversation history")
        return fakeredis.FakeRedis(decode_responses=True)

    if not redis_url:
        raise ConfigurationError("REDIS_URL is not configured")

    client = redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=MAX_CONNECTIONS,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
    )

    try:
        await client.ping()
    except redis.RedisError as e:
        logger.error(
            "Redis connection failed",
            error=str(e),
            redis_url=redact_url(redis_url),
            hint="Check REDIS_URL and ensure Redis server is running",
        )
        await client.aclose()
        raise UpstreamUnavailableError("redis", str(e)) from e

    logger.info(
        "Redis client initialized successfully",
        url=redact_url(redis_url),
        max_connections=MAX_CONNECTIONS,
    )
    return client


async def close_redis_client(client: Optional[redis.Redis]) -> None:
    """Close a Redis client, logging rather than raising on failure."""
    if client is None:
        return
    try:
        await client.aclose()
        logger.info("Redis client closed")
    except Exception as e:
        logger.warning("Error closing Redis client", error=str(e))


async def health_check(client: Optional[redis.Redis]) -> bool:
    """
    Check Redis health.

    Returns:
        True if Redis is healthy, False otherwise
    """
    if client is None:
        return False
    try:
        return await client.ping() is True
    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        return False
