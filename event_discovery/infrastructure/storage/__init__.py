"""
Snapshot Storage Infrastructure

Durable key/value stores for cache snapshots:
- InMemorySnapshotRepository: process-local dictionary
- FileSnapshotRepository: JSON files on local disk
- RedisSnapshotRepository: Redis strings via redis.asyncio
"""

from typing import Optional

from ...core.config import Settings
from ...domain.cache.repository_interfaces import CacheSnapshotRepository
from .redis_snapshot_store import RedisSnapshotRepository
from .snapshot_store import FileSnapshotRepository, InMemorySnapshotRepository


def build_snapshot_repository(settings: Settings) -> Optional[CacheSnapshotRepository]:
    """Create the snapshot repository selected by configuration."""
    if not settings.CACHE_PERSISTENCE_ENABLED:
        return None
    backend = settings.CACHE_PERSISTENCE_BACKEND
    if backend == "file":
        return FileSnapshotRepository(settings.CACHE_PERSISTENCE_DIRECTORY)
    if backend == "redis":
        return RedisSnapshotRepository(redis_url=settings.REDIS_URL)
    return InMemorySnapshotRepository()


__all__ = [
    "InMemorySnapshotRepository",
    "FileSnapshotRepository",
    "RedisSnapshotRepository",
    "build_snapshot_repository",
]
