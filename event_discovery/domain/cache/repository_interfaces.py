"""
Cache Repository Interfaces

Abstract repository for durable cache snapshots. Implementations store one
opaque string document per namespace key.
"""

from abc import ABC, abstractmethod
from typing import Optional


class CacheSnapshotRepository(ABC):
    """
    Abstract key/value store for cache snapshots.

    Implementations may raise on any operation; the cache engine treats
    every failure as non-fatal.
    """

    @abstractmethod
    async def save(self, key: str, payload: str) -> None:
        """Store payload under key, replacing any previous value."""
        pass

    @abstractmethod
    async def load(self, key: str) -> Optional[str]:
        """Return the stored payload or None when absent."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete the stored payload if present."""
        pass

    async def close(self) -> None:
        """Release underlying resources."""
        return None
