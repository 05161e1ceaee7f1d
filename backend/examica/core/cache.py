import redis
import redis.asyncio as aioredis
import json
import logging
from typing import Any, Optional
from .config import settings

logger = logging.getLogger(__name__)


def serialize_value(value: Any) -> str:
    """Serialize value for Redis storage"""
    return json.dumps(value, default=str)


def deserialize_value(value: Optional[str]) -> Any:
    """Deserialize value from Redis"""
    if value is None:
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Cache deserialization error: {e}")
        return value


class CacheManager:
    """Owns the Redis client shared by the answer cache, rate limiter and security log"""

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self._async_client = None

    async def get_async_client(self) -> aioredis.Redis:
        """Get asynchronous Redis client"""
        if self._async_client is None:
            self._async_client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        return self._async_client

    def reset_async_client(self):
        """Drop the async client so the next call reconnects"""
        self._async_client = None

    async def ahealth_check(self) -> bool:
        try:
            client = await self.get_async_client()
            return bool(await client.ping())
        except redis.RedisError as e:
            logger.error(f"Cache health check failed: {e}")
            return False

    async def aclose(self):
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None


cache = CacheManager()
