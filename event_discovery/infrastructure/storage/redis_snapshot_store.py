"""
Redis Snapshot Repository

Stores cache snapshots in Redis so a restarted process can warm its cache
from the last saved state.
"""

from typing import Optional

import structlog
from redis.asyncio import Redis

from ...domain.cache.repository_interfaces import CacheSnapshotRepository

logger = structlog.get_logger(__name__)


class RedisSnapshotRepository(CacheSnapshotRepository):
    """
    Snapshot repository backed by redis.asyncio.

    Args:
        client: Existing Redis client (takes precedence over redis_url)
        redis_url: Connection URL used to build a client lazily
        expire_seconds: Optional Redis-side expiry for stored snapshots
    """

    def __init__(
        self,
        client: Optional[Redis] = None,
        redis_url: str = "redis://localhost:6379",
        expire_seconds: Optional[int] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.redis_url = redis_url
        self.expire_seconds = expire_seconds

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url, encoding="utf-8", decode_responses=True
            )
            logger.info("Redis snapshot client created", url=self.redis_url)
        return self._client

    async def save(self, key: str, payload: str) -> None:
        await self.client.set(key, payload, ex=self.expire_seconds)

    async def load(self, key: str) -> Optional[str]:
        value = await self.client.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def remove(self, key: str) -> None:
        await self.client.delete(key)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
