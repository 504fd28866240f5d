"""Event fetching services combining the cache engine and the resilience layer."""

from .cached_fetcher import CachedEventFetcher

__all__ = ["CachedEventFetcher"]
