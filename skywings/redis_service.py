"""
Redis Service for SkyWings
Connection management and distributed locks for flight seat allocation
"""

import redis.asyncio as aioredis
from redis.asyncio.lock import Lock
from typing import Optional
import logging

from .config import settings

logger = logging.getLogger(__name__)


class RedisService:
    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self.redis_client: Optional[aioredis.Redis] = None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis_client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test connection
            await self.redis_client.ping()
            logger.info("✅ Connected to Redis")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            raise

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("📴 Disconnected from Redis")

    async def ping(self) -> bool:
        if not self.redis_client:
            return False
        return await self.redis_client.ping()

    def lock(self, resource: str, timeout: float, blocking_timeout: float) -> Lock:
        """
        Distributed lock for a resource (e.g. a flight's seat matrix).

        The lock expires after ``timeout`` seconds even if its holder dies;
        acquiring waits at most ``blocking_timeout`` seconds.
        """
        if not self.redis_client:
            raise RuntimeError("Redis is not connected")
        return self.redis_client.lock(
            f"lock:{resource}",
            timeout=timeout,
            blocking_timeout=blocking_timeout
        )


# Global Redis service instance
redis_service = RedisService()

