"""
Cache Services

In-memory cache engine with TTL, LRU eviction, tag invalidation and
snapshot persistence.
"""

from .cache_engine import CacheEngine, contained

__all__ = ["CacheEngine", "contained"]
