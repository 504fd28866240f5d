"""Cache domain: entries, statistics, keys, tags and snapshot storage contract."""

from .entities import CacheEntry, CacheSnapshot, CacheStats, SnapshotEntry
from .repository_interfaces import CacheSnapshotRepository
from .value_objects import TTL, CacheKey, CacheTag, normalize_key, normalize_tag

__all__ = [
    "CacheEntry",
    "CacheSnapshot",
    "CacheStats",
    "SnapshotEntry",
    "CacheSnapshotRepository",
    "TTL",
    "CacheKey",
    "CacheTag",
    "normalize_key",
    "normalize_tag",
]
