"""
Redis caching utilities.

The inventory service caches dashboard summaries here. Every service whose
writes change the dashboard counts invalidates them. Cache failures are logged
and treated as misses; an empty REDIS_URL disables caching entirely.
"""
import json
import logging
from typing import Optional, Any
import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

DASHBOARD_PREFIX = "dashboard"

redis_client = redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=1) if REDIS_URL else None


def get_cache(key: str) -> Optional[Any]:
    """
    Get a value from Redis cache.

    Args:
        key: Cache key

    Returns:
        Cached value or None if not found
    """
    if redis_client is None:
        return None
    try:
        value = redis_client.get(key)
        if value:
            return json.loads(value)
        return None
    except redis.RedisError as e:
        logger.warning(f"Cache get error: {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set a value in Redis cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time to live in seconds

    Returns:
        True if successful, False otherwise
    """
    if redis_client is None:
        return False
    try:
        redis_client.setex(key, ttl, json.dumps(value))
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache set error: {e}")
        return False


def delete_pattern(pattern: str) -> bool:
    """
    Delete all keys matching a pattern.

    Args:
        pattern: Pattern to match (e.g., "dashboard:*")

    Returns:
        True if successful, False otherwise
    """
    if redis_client is None:
        return False
    try:
        keys = redis_client.keys(pattern)
        if keys:
            redis_client.delete(*keys)
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache delete pattern error: {e}")
        return False


def dashboard_key(user_id: int) -> str:
    return f"{DASHBOARD_PREFIX}:{user_id}"


def invalidate_dashboards() -> bool:
    """Drop every cached dashboard summary. Called after any write that changes the counts."""
    return delete_pattern(f"{DASHBOARD_PREFIX}:*")
