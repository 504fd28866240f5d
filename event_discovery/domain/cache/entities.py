"""
Cache Domain Entities

Core entities of the in-memory cache: stored entries, process-wide
statistics and the serializable snapshot written to durable storage.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, Generic, Iterable, List, Tuple, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """
    Cache entry entity.

    The payload is owned by the cache once stored. Expiry is always derived
    from ``created_at + ttl_seconds`` at check time so that extend() takes
    effect immediately.
    """

    data: T
    created_at: float
    ttl_seconds: float
    tags: FrozenSet[str] = field(default_factory=frozenset)
    access_count: int = 0
    last_accessed_at: float = 0.0

    def __post_init__(self) -> None:
        if not self.last_accessed_at:
            self.last_accessed_at = self.created_at

    def is_expired(self, now: float) -> bool:
        """Check if the entry outlived its TTL."""
        return now - self.created_at > self.ttl_seconds

    def remaining_ttl(self, now: float) -> float:
        return max(0.0, self.created_at + self.ttl_seconds - now)

    def access(self, now: float) -> None:
        """Record a cache hit."""
        self.access_count += 1
        self.last_accessed_at = now

    def extend(self, additional_seconds: float) -> None:
        self.ttl_seconds += additional_seconds

    def has_any_tag(self, tags: Iterable[str]) -> bool:
        return not self.tags.isdisjoint(tags)


@dataclass
class CacheStats:
    """Process-wide cache counters."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Hits over lookups, 0.0 before the first lookup."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def merge(self, other: Dict[str, Any]) -> None:
        """Overlay counters restored from a snapshot."""
        for name in ("hits", "misses", "sets", "deletes", "evictions"):
            if name in other:
                setattr(self, name, int(other[name]))

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class SnapshotEntry(BaseModel):
    """Serialized form of one cache entry."""

    data: Any = None
    created_at: float
    ttl_seconds: float
    access_count: int = 0
    last_accessed_at: float = 0.0
    tags: List[str] = Field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> "SnapshotEntry":
        return cls(
            data=entry.data,
            created_at=entry.created_at,
            ttl_seconds=entry.ttl_seconds,
            access_count=entry.access_count,
            last_accessed_at=entry.last_accessed_at,
            tags=sorted(entry.tags),
        )

    def to_entry(self) -> CacheEntry:
        return CacheEntry(
            data=self.data,
            created_at=self.created_at,
            ttl_seconds=self.ttl_seconds,
            tags=frozenset(self.tags),
            access_count=self.access_count,
            last_accessed_at=self.last_accessed_at,
        )


class CacheSnapshot(BaseModel):
    """Snapshot document persisted under the cache namespace key."""

    cache: List[Tuple[str, SnapshotEntry]] = Field(default_factory=list)
    stats: Dict[str, int] = Field(default_factory=dict)
    timestamp: float = Field(..., description="Epoch seconds of the save")
