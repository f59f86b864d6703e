"""
Redis Configuration for OAuth State Storage

Provides a lazily created, pooled Redis client used when
OAUTH_STATE_BACKEND=redis.
"""
from typing import Optional
from redis import Redis
from loguru import logger

from config.settings import settings


class RedisConfig:
    """Redis connection configuration with production-ready defaults."""

    # Connection pool settings
    REDIS_MAX_CONNECTIONS = 50
    REDIS_SOCKET_TIMEOUT = 5
    REDIS_SOCKET_CONNECT_TIMEOUT = 5

    # Key namespace for pending OAuth states
    STATE_KEY_PREFIX = "oauth_state"


# Singleton Redis client
_redis_client: Optional[Redis] = None


def get_redis_client() -> Redis:
    """
    Get synchronous Redis client.

    Returns:
        Redis: Synchronous Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = Redis.from_url(
            settings.REDIS_URL,
            max_connections=RedisConfig.REDIS_MAX_CONNECTIONS,
            socket_timeout=RedisConfig.REDIS_SOCKET_TIMEOUT,
            socket_connect_timeout=RedisConfig.REDIS_SOCKET_CONNECT_TIMEOUT,
            decode_responses=True
        )
        logger.info("Redis client initialized")

    return _redis_client


def close_redis_connection():
    """Close the Redis connection on app shutdown."""
    global _redis_client

    if _redis_client:
        _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")


def test_redis_connection() -> bool:
    """
    Test Redis connection on startup.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        get_redis_client().ping()
        logger.info("Redis connection test successful")
        return True
    except Exception as e:
        logger.error(f"Redis connection test failed: {e}")
        return False
