"""
Redis connectivity for the news chat service.

This module provides the async Redis client used as the session store.
"""

from libs.caching.redis_client import close_redis_client, create_redis_client

__all__ = ["create_redis_client", "close_redis_client"]
