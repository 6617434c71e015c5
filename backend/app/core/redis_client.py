import redis.asyncio as aioredis
from redis.asyncio import Redis
from typing import Optional

from app.core.config import settings
from app.core.logging_config import logger


class RedisClient:
    """Redis connection holder for the shared planning session store"""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.redis: Optional[Redis] = None

    async def connect(self) -> Redis:
        """Connect to Redis"""
        if self.redis is not None:
            return self.redis
        try:
            self.redis = aioredis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True
            )
            await self.redis.ping()
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.error(f"Redis connection error: {e}")
            self.redis = None
            raise
        return self.redis

    async def disconnect(self) -> None:
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
        logger.info("Redis disconnected")

    async def ping(self) -> bool:
        """Check the connection is alive"""
        try:
            return bool(self.redis and await self.redis.ping())
        except Exception as e:
            logger.error(f"Redis PING error: {e}")
            return False


# Create Redis client instance
redis_client = RedisClient()
