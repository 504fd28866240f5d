"""
Cached Event Fetcher

Read-through access to external event providers: answer from the cache
when possible, otherwise call the provider through the resilient executor
and cache the result under a structured key with invalidation tags.
"""

from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, Union

import structlog

from ...domain.cache.value_objects import TTL, CacheKey, CacheTag
from ...domain.resilience.value_objects import ApiCallOptions
from ..cache.cache_engine import CacheEngine, KeyLike, TagLike
from ..resilience.executor import ResilientExecutor

logger = structlog.get_logger(__name__)

Fetcher = Callable[[], Awaitable[Any]]

_LOCATION_PARAMS = ("lat", "lng", "latitude", "longitude", "location", "city")


class CachedEventFetcher:
    """Cache-first fetching of event data from named providers."""

    def __init__(self, cache: CacheEngine, executor: ResilientExecutor):
        self.cache = cache
        self.executor = executor

    async def fetch(
        self,
        api_name: str,
        key: KeyLike,
        fetcher: Fetcher,
        ttl_seconds: Optional[float] = None,
        tags: Iterable[TagLike] = (),
        options: Optional[ApiCallOptions] = None,
    ) -> Any:
        """
        Return cached data for key, or fetch it through the executor.

        Args:
            api_name: Provider the fetcher talks to
            key: Cache key of the result
            fetcher: Zero-argument coroutine factory performing the request
            ttl_seconds: Cache TTL (engine default when None)
            tags: Invalidation tags stored with the result
            options: Retry, timeout and priority options for the call

        Returns:
            The cached or freshly fetched data

        Raises:
            Exception: Whatever the executor raises when the provider call
                fails; nothing is cached in that case
        """

        async def _call_provider() -> Any:
            logger.debug("Cache miss, calling provider", api_name=api_name, key=str(key))
            return await self.executor.execute_api_call(api_name, fetcher, options)

        return await self.cache.get_or_set(key, _call_provider, ttl_seconds, tags)

    async def fetch_event_list(
        self,
        api_name: str,
        params: Dict[str, Any],
        fetcher: Fetcher,
        options: Optional[ApiCallOptions] = None,
    ) -> Any:
        """Fetch an event listing cached for five minutes."""
        tags: Tuple[CacheTag, ...] = (CacheTag.EVENTS, CacheTag.API_RESPONSES)
        if any(name in params for name in _LOCATION_PARAMS):
            tags += (CacheTag.LOCATION_BASED,)
        return await self.fetch(
            api_name,
            CacheKey.event_list(params),
            fetcher,
            ttl_seconds=TTL.event_list().seconds,
            tags=tags,
            options=options,
        )

    async def fetch_event_detail(
        self,
        api_name: str,
        event_id: Union[int, str],
        fetcher: Fetcher,
        options: Optional[ApiCallOptions] = None,
    ) -> Any:
        """Fetch a single event cached for fifteen minutes."""
        return await self.fetch(
            api_name,
            CacheKey.event_detail(event_id),
            fetcher,
            ttl_seconds=TTL.event_detail().seconds,
            tags=(CacheTag.EVENTS,),
            options=options,
        )

    async def search_events(
        self,
        api_name: str,
        query: str,
        fetcher: Fetcher,
        location: Optional[str] = None,
        options: Optional[ApiCallOptions] = None,
    ) -> Any:
        """Fetch search results cached for two minutes."""
        tags: Tuple[CacheTag, ...] = (CacheTag.SEARCH_RESULTS, CacheTag.EVENTS)
        if location:
            tags += (CacheTag.LOCATION_BASED,)
        return await self.fetch(
            api_name,
            CacheKey.event_search(query, location),
            fetcher,
            ttl_seconds=TTL.search_results().seconds,
            tags=tags,
            options=options,
        )

    def invalidate_location_based(self) -> int:
        """Drop every cached result that depends on the user's location."""
        return self.invalidate_tags(CacheTag.LOCATION_BASED)

    def invalidate_tags(self, *tags: TagLike) -> int:
        cleared = self.cache.clear_by_tags(tags)
        logger.info(
            "Event cache invalidated",
            component="cached_event_fetcher",
            action="invalidate",
            tags=[str(getattr(tag, "value", tag)) for tag in tags],
            cleared=cleared,
        )
        return cleared
