"""
Redis key-value store with graceful degradation.

Holds short-lived OAuth ``state`` values between the redirect to Google and
the callback. When Redis is unreachable the store reports itself disabled and
the OAuth routes refuse to start a flow.
"""
import redis
import json
import logging
from typing import Optional, Any

from app.config import get_settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis caching service with graceful degradation"""

    def __init__(self, redis_url: Optional[str] = None):
        redis_url = redis_url or get_settings().redis_url

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            self.client.ping()
            self.enabled = True
            logger.info("Redis cache connected")
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable, cache disabled: {e}")
            self.client = None
            self.enabled = False

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if not self.enabled:
            return None
        try:
            value = self.client.get(key)
            return json.loads(value) if value else None
        except redis.RedisError as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Set value in cache with TTL in seconds"""
        if not self.enabled:
            return False
        try:
            return bool(self.client.setex(key, ttl, json.dumps(value, default=str)))
        except redis.RedisError as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    def pop(self, key: str) -> Optional[Any]:
        """Read and delete a key in one round trip"""
        if not self.enabled:
            return None
        try:
            pipe = self.client.pipeline()
            pipe.get(key)
            pipe.delete(key)
            value, _ = pipe.execute()
            return json.loads(value) if value else None
        except redis.RedisError as e:
            logger.error(f"Cache pop error for key {key}: {e}")
            return None


# Global cache instance
_cache_instance = None


def get_cache() -> CacheService:
    """Get or create global cache instance"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = CacheService()
    return _cache_instance


def cache_key(*args, **kwargs) -> str:
    """Generate cache key from arguments"""
    parts = [str(arg) for arg in args]
    parts.extend([f"{k}={v}" for k, v in sorted(kwargs.items()) if v is not None])
    return ":".join(parts)
