"""
Cache Engine

Bounded in-memory cache with per-entry TTL, LRU eviction, tag-based bulk
invalidation and best-effort snapshot persistence to a durable store.

The engine never raises into caller code: internal failures are logged and
converted to a safe default. The only error that escapes is the one raised
by a get_or_set() fetcher.
"""

import asyncio
import functools
from collections import OrderedDict
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

import structlog
from opentelemetry import trace

from ...core.metrics import CACHE_ENTRIES, CACHE_EVICTIONS, CACHE_OPERATIONS
from ...core.scheduling import Clock, PeriodicTask, SystemClock
from ...domain.cache.entities import (
    CacheEntry,
    CacheSnapshot,
    CacheStats,
    SnapshotEntry,
)
from ...domain.cache.repository_interfaces import CacheSnapshotRepository
from ...domain.cache.value_objects import CacheKey, CacheTag, normalize_key, normalize_tag

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")
KeyLike = Union[str, CacheKey]
TagLike = Union[str, CacheTag]

_MISSING = object()


def contained(default: Any):
    """
    Decorator for public cache operations.

    Any exception raised by the wrapped method is logged and replaced by
    ``default`` (called first when it is a factory such as ``list``).
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except Exception as e:
                logger.exception(
                    "Cache operation failed",
                    component="cache_engine",
                    action=func.__name__,
                    error=str(e),
                )
                return default() if callable(default) else default

        return wrapper

    return decorator


def _normalize_tags(tags: Union[None, TagLike, Iterable[TagLike]]) -> FrozenSet[str]:
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        return frozenset([normalize_tag(tags)])
    return frozenset(normalize_tag(tag) for tag in tags)


class CacheEngine:
    """
    TTL-aware, tag-addressable LRU cache.

    Recency is kept by an ordered mapping: every insert and every hit moves
    the entry to the most-recent end, so the first entry is always the least
    recently accessed one.

    Args:
        max_size: Maximum number of entries
        default_ttl_seconds: TTL used when set() receives none
        clock: Time source (wall clock by default)
        snapshot_repository: Durable store for snapshots, None disables persistence
        persistence_key: Namespace key of the snapshot document
        persistence_max_age_seconds: Older snapshots are discarded on restore
        persistence_max_entries: Most-recent entries kept per snapshot
        sweep_interval_seconds: Period of the sweep-and-persist cycle
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl_seconds: float = 300.0,
        clock: Optional[Clock] = None,
        snapshot_repository: Optional[CacheSnapshotRepository] = None,
        persistence_key: str = "events-cache-v1",
        persistence_max_age_seconds: float = 3600.0,
        persistence_max_entries: int = 100,
        sweep_interval_seconds: float = 60.0,
    ):
        if max_size < 1:
            raise ValueError("Cache max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl_seconds = default_ttl_seconds
        self.clock = clock or SystemClock()
        self.snapshot_repository = snapshot_repository
        self.persistence_key = persistence_key
        self.persistence_max_age_seconds = persistence_max_age_seconds
        self.persistence_max_entries = persistence_max_entries

        self._entries: "OrderedDict[str, CacheEntry[Any]]" = OrderedDict()
        self._stats = CacheStats()
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}
        self._maintenance = PeriodicTask(
            self.clock,
            sweep_interval_seconds,
            self.run_maintenance,
            name="cache-maintenance",
        )
        self._started = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: KeyLike) -> bool:
        return self.has(key)

    # Core operations

    @contained(None)
    def set(
        self,
        key: KeyLike,
        data: T,
        ttl_seconds: Optional[float] = None,
        tags: Union[None, TagLike, Iterable[TagLike]] = (),
    ) -> None:
        """
        Insert or overwrite an entry.

        Inserting a new key into a full cache first drops expired entries and,
        if the cache is still full, evicts the least recently used entry.
        """
        name = normalize_key(key)
        ttl = self.default_ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        now = self.clock.now()

        if name in self._entries:
            # Re-inserted below at the most-recent end
            del self._entries[name]
        elif len(self._entries) >= self.max_size:
            self._make_room(now)

        entry = CacheEntry(
            data=data, created_at=now, ttl_seconds=ttl, tags=_normalize_tags(tags)
        )
        self._entries[name] = entry
        self._stats.sets += 1
        CACHE_OPERATIONS.labels(operation="set", result="ok").inc()
        self._update_size()

        logger.debug(
            "Cache set",
            key=name,
            ttl=ttl,
            tags=sorted(entry.tags),
            size=len(self._entries),
        )

    def get(self, key: KeyLike, default: Optional[T] = None) -> Optional[T]:
        """Return the live value for key, or default when missing or expired."""
        value = self._find(normalize_key(key))
        return default if value is _MISSING else value

    @contained(False)
    def has(self, key: KeyLike) -> bool:
        """Check liveness without touching access metadata or hit counters."""
        name = normalize_key(key)
        entry = self._entries.get(name)
        if entry is None:
            return False
        if entry.is_expired(self.clock.now()):
            self._drop_expired(name)
            return False
        return True

    @contained(False)
    def delete(self, key: KeyLike) -> bool:
        """Remove an entry; True when something was removed."""
        name = normalize_key(key)
        if self._entries.pop(name, None) is None:
            return False
        self._stats.deletes += 1
        CACHE_OPERATIONS.labels(operation="delete", result="ok").inc()
        self._update_size()
        return True

    @contained(0)
    def clear_by_tags(self, tags: Union[TagLike, Iterable[TagLike]]) -> int:
        """Remove every entry carrying at least one of the given tags."""
        wanted = _normalize_tags(tags)
        if not wanted:
            return 0

        doomed = [
            name for name, entry in self._entries.items() if entry.has_any_tag(wanted)
        ]
        for name in doomed:
            del self._entries[name]

        self._stats.deletes += len(doomed)
        CACHE_OPERATIONS.labels(operation="clear_by_tags", result="ok").inc()
        self._update_size()
        logger.info(
            "Cache cleared by tags",
            component="cache_engine",
            action="clear_by_tags",
            tags=sorted(wanted),
            cleared=len(doomed),
        )
        return len(doomed)

    @contained(None)
    def clear(self) -> None:
        """Remove everything; counters other than deletes are kept."""
        size = len(self._entries)
        self._entries.clear()
        self._stats.deletes += size
        CACHE_OPERATIONS.labels(operation="clear", result="ok").inc()
        self._update_size()
        logger.info(
            "Cache cleared",
            component="cache_engine",
            action="clear",
            items_cleared=size,
        )

    @contained(False)
    def extend(self, key: KeyLike, additional_seconds: float) -> bool:
        """Lengthen the TTL of a live entry without resetting its age."""
        name = normalize_key(key)
        entry = self._entries.get(name)
        if entry is None:
            return False
        if entry.is_expired(self.clock.now()):
            self._drop_expired(name)
            return False

        entry.extend(additional_seconds)
        logger.debug(
            "Cache TTL extended",
            key=name,
            additional_seconds=additional_seconds,
            new_ttl=entry.ttl_seconds,
        )
        return True

    async def get_or_set(
        self,
        key: KeyLike,
        fetcher: Callable[[], Awaitable[T]],
        ttl_seconds: Optional[float] = None,
        tags: Union[None, TagLike, Iterable[TagLike]] = (),
    ) -> T:
        """
        Return the cached value or fetch, store and return a fresh one.

        Concurrent callers for the same key share a single fetch. A failing
        fetcher propagates its error to every waiting caller and nothing is
        cached. When the fetching caller is cancelled, a waiting caller takes
        over with its own fetch.
        """
        name = normalize_key(key)
        cached = self._find(name)
        if cached is not _MISSING:
            return cached

        pending = self._inflight.get(name)
        if pending is not None:
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # The leading caller was cancelled, not this one: fetch again
                return await self.get_or_set(key, fetcher, ttl_seconds, tags)

        future: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        self._inflight[name] = future
        try:
            data = await fetcher()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved; waiters re-raise it through their own await
            future.exception()
            logger.error(
                "Cache get_or_set fetcher error",
                component="cache_engine",
                action="get_or_set",
                key=name,
                error=str(e),
            )
            raise
        finally:
            self._inflight.pop(name, None)

        self.set(name, data, ttl_seconds, tags)
        future.set_result(data)
        return data

    # Batch operations

    def mget(self, keys: Iterable[KeyLike]) -> List[Optional[Any]]:
        return [self.get(key) for key in keys]

    def mset(
        self,
        items: Mapping[KeyLike, Any],
        ttl_seconds: Optional[float] = None,
        tags: Union[None, TagLike, Iterable[TagLike]] = (),
    ) -> None:
        for key, data in items.items():
            self.set(key, data, ttl_seconds, tags)

    # Introspection

    @contained(dict)
    def get_stats(self) -> Dict[str, Any]:
        """Counters plus current size and hit rate."""
        return {
            **self._stats.to_dict(),
            "size": len(self._entries),
            "hit_rate": self._stats.hit_rate,
        }

    @contained(list)
    def get_keys(self, tag: Optional[TagLike] = None) -> List[str]:
        """All keys, or only those carrying tag."""
        if tag is None:
            return list(self._entries.keys())
        wanted = normalize_tag(tag)
        return [name for name, entry in self._entries.items() if wanted in entry.tags]

    def reset_stats(self) -> None:
        self._stats = CacheStats()

    # Expiry and eviction

    @contained(0)
    def sweep_expired(self) -> int:
        """Remove every expired entry; returns the number removed."""
        now = self.clock.now()
        expired = [
            name for name, entry in self._entries.items() if entry.is_expired(now)
        ]
        for name in expired:
            del self._entries[name]

        if expired:
            self._stats.evictions += len(expired)
            CACHE_EVICTIONS.labels(reason="expired").inc(len(expired))
            self._update_size()
            logger.debug("Cache cleanup completed", items_cleaned=len(expired))
        return len(expired)

    @contained(_MISSING)
    def _find(self, name: str) -> Any:
        entry = self._entries.get(name)
        if entry is None:
            self._record_miss()
            return _MISSING

        now = self.clock.now()
        if entry.is_expired(now):
            self._drop_expired(name)
            self._record_miss()
            return _MISSING

        entry.access(now)
        self._entries.move_to_end(name)
        self._stats.hits += 1
        CACHE_OPERATIONS.labels(operation="get", result="hit").inc()
        logger.debug("Cache hit", key=name, access_count=entry.access_count)
        return entry.data

    def _record_miss(self) -> None:
        self._stats.misses += 1
        CACHE_OPERATIONS.labels(operation="get", result="miss").inc()

    def _drop_expired(self, name: str) -> None:
        del self._entries[name]
        self._stats.evictions += 1
        CACHE_EVICTIONS.labels(reason="expired").inc()
        self._update_size()

    def _make_room(self, now: float) -> None:
        self.sweep_expired()
        if len(self._entries) < self.max_size:
            return

        name, _ = self._entries.popitem(last=False)
        self._stats.evictions += 1
        CACHE_EVICTIONS.labels(reason="lru").inc()
        logger.debug("Cache evicted LRU item", key=name)

    def _update_size(self) -> None:
        CACHE_ENTRIES.set(len(self._entries))

    # Persistence

    def build_snapshot(self) -> CacheSnapshot:
        """
        Snapshot of the most recently used live entries.

        Entries whose payload cannot be serialized are left out.
        """
        now = self.clock.now()
        serializable = []
        for name, entry in self._entries.items():
            if entry.is_expired(now):
                continue
            item = SnapshotEntry.from_entry(entry)
            try:
                item.model_dump(mode="json")
            except (TypeError, ValueError) as e:
                logger.debug("Skipping unserializable cache entry", key=name, error=str(e))
                continue
            serializable.append((name, item))

        return CacheSnapshot(
            cache=serializable[-self.persistence_max_entries :],
            stats=self._stats.to_dict(),
            timestamp=now,
        )

    async def persist(self) -> bool:
        """Write a snapshot to the durable store; failures are logged only."""
        if self.snapshot_repository is None:
            return False

        with tracer.start_as_current_span("cache.persist") as span:
            try:
                snapshot = self.build_snapshot()
                await self.snapshot_repository.save(
                    self.persistence_key, snapshot.model_dump_json()
                )
            except Exception as e:
                logger.warning(
                    "Cache persistence save failed",
                    component="cache_engine",
                    action="persist",
                    error=str(e),
                )
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                return False
            span.set_attribute("cache.persisted_entries", len(snapshot.cache))

        logger.debug("Cache persisted", entries=len(snapshot.cache))
        return True

    async def restore(self) -> int:
        """
        Load the last snapshot; returns the number of restored entries.

        Snapshots older than the staleness ceiling are discarded wholesale.
        Individually expired entries are skipped and live entries already in
        the cache are never overwritten.
        """
        if self.snapshot_repository is None:
            return 0

        try:
            raw = await self.snapshot_repository.load(self.persistence_key)
        except Exception as e:
            logger.warning(
                "Cache persistence load failed",
                component="cache_engine",
                action="restore",
                error=str(e),
            )
            return 0
        if raw is None:
            return 0

        try:
            snapshot = CacheSnapshot.model_validate_json(raw)
        except ValueError as e:
            logger.warning(
                "Cache snapshot is corrupt, discarding",
                component="cache_engine",
                action="restore",
                error=str(e),
            )
            await self._discard_snapshot()
            return 0

        now = self.clock.now()
        age = now - snapshot.timestamp
        if age > self.persistence_max_age_seconds:
            logger.info("Discarding stale cache snapshot", age_seconds=age)
            await self._discard_snapshot()
            return 0

        restored = 0
        # Snapshots are stored least-recent first; walk them newest first and
        # push each entry to the least-recent end
        for name, item in reversed(snapshot.cache):
            if len(self._entries) >= self.max_size:
                break
            if name in self._entries:
                continue
            entry = item.to_entry()
            if entry.is_expired(now):
                continue
            self._entries[name] = entry
            self._entries.move_to_end(name, last=False)
            restored += 1

        self._stats.merge(snapshot.stats)
        self._update_size()
        logger.info(
            "Cache loaded from persistence",
            component="cache_engine",
            action="restore",
            items_loaded=restored,
            age_seconds=age,
        )
        return restored

    async def _discard_snapshot(self) -> None:
        try:
            await self.snapshot_repository.remove(self.persistence_key)
        except Exception as e:
            logger.warning("Failed to remove cache snapshot", error=str(e))

    # Lifecycle

    async def run_maintenance(self) -> None:
        """One sweep-and-persist cycle."""
        self.sweep_expired()
        await self.persist()

    async def start(self) -> None:
        """Restore the last snapshot and schedule the maintenance cycle."""
        if self._started:
            return
        await self.restore()
        self._maintenance.start()
        self._started = True
        logger.info("Cache engine started", max_size=self.max_size)

    async def shutdown(self) -> None:
        """Cancel the maintenance cycle and flush a final snapshot."""
        self._maintenance.stop()
        await self.persist()
        self._started = False
        logger.info("Cache engine stopped", size=len(self._entries))
