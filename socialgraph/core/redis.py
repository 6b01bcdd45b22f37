import redis.asyncio as redis
from typing import Optional
import json
import logging

from socialgraph.core.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.redis: Optional[redis.Redis] = None

    @property
    def connected(self) -> bool:
        return self.redis is not None

    async def connect(self):
        """Connect to Redis"""
        self.redis = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True
        )
        try:
            await self.redis.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable, continuing without it: {e}")
            await self.redis.aclose()
            self.redis = None

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        if not self.redis:
            return None
        return await self.redis.get(key)

    async def set(self, key: str, value: str, expire: int = 3600) -> bool:
        """Set value in Redis with expiration"""
        if not self.redis:
            return False
        return bool(await self.redis.set(key, value, ex=expire))

    async def delete(self, key: str) -> bool:
        """Delete key from Redis"""
        if not self.redis:
            return False
        return await self.redis.delete(key) > 0

    async def exists(self, key: str) -> bool:
        """Check if key exists in Redis"""
        if not self.redis:
            return False
        return await self.redis.exists(key) > 0

    async def ttl(self, key: str) -> int:
        """Seconds until key expires, 0 when missing or not connected"""
        if not self.redis:
            return 0
        return max(await self.redis.ttl(key), 0)

    async def get_json(self, key: str) -> Optional[dict]:
        """Get JSON value from Redis"""
        value = await self.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return None
        return None

    async def set_json(self, key: str, value: dict, expire: int = 3600) -> bool:
        """Set JSON value in Redis"""
        try:
            json_str = json.dumps(value, default=str)
        except TypeError:
            return False
        return await self.set(key, json_str, expire)


# Global Redis client instance
redis_client = RedisClient()


async def get_redis() -> RedisClient:
    """Dependency to get Redis client"""
    return redis_client
