"""
Service Container

Composition root wiring the cache engine, its snapshot store, the
resilient executor and the cached event fetcher from settings.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Optional

import structlog

from .constants import DEFAULT_RATE_LIMITS
from .core.config import Settings, get_settings
from .core.logging import configure_logging
from .core.scheduling import Clock, SystemClock
from .domain.cache.repository_interfaces import CacheSnapshotRepository
from .domain.resilience.value_objects import ApiCallOptions, CircuitBreakerConfig
from .infrastructure.storage import build_snapshot_repository
from .services.cache.cache_engine import CacheEngine
from .services.events.cached_fetcher import CachedEventFetcher
from .services.resilience.executor import ResilientExecutor

logger = structlog.get_logger(__name__)


class ServiceContainer:
    """Owns the long-lived services and their start/shutdown order."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        snapshot_repository: Optional[CacheSnapshotRepository] = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.snapshot_repository = (
            snapshot_repository
            if snapshot_repository is not None
            else build_snapshot_repository(self.settings)
        )

        self.cache = CacheEngine(
            max_size=self.settings.CACHE_MAX_SIZE,
            default_ttl_seconds=self.settings.CACHE_DEFAULT_TTL_SECONDS,
            clock=self.clock,
            snapshot_repository=self.snapshot_repository,
            persistence_key=self.settings.CACHE_PERSISTENCE_KEY,
            persistence_max_age_seconds=self.settings.CACHE_PERSISTENCE_MAX_AGE_SECONDS,
            persistence_max_entries=self.settings.CACHE_PERSISTENCE_MAX_ENTRIES,
            sweep_interval_seconds=self.settings.CACHE_SWEEP_INTERVAL_SECONDS,
        )
        self.executor = ResilientExecutor(
            rate_limits=DEFAULT_RATE_LIMITS,
            default_circuit_breaker=CircuitBreakerConfig(
                failure_threshold=self.settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                reset_timeout_seconds=self.settings.CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS,
                monitoring_period_seconds=self.settings.CIRCUIT_BREAKER_MONITORING_PERIOD_SECONDS,
            ),
            default_options=ApiCallOptions(
                retries=self.settings.API_DEFAULT_RETRIES,
                retry_delay_seconds=self.settings.API_DEFAULT_RETRY_DELAY_SECONDS,
                timeout_seconds=self.settings.API_DEFAULT_TIMEOUT_SECONDS,
            ),
            clock=self.clock,
            cleanup_interval_seconds=self.settings.RESILIENCE_CLEANUP_INTERVAL_SECONDS,
        )
        self.fetcher = CachedEventFetcher(self.cache, self.executor)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        configure_logging(self.settings)
        await self.cache.start()
        await self.executor.start()
        self._started = True
        logger.info(
            "Event discovery services started",
            environment=self.settings.ENVIRONMENT,
            persistence_backend=(
                self.settings.CACHE_PERSISTENCE_BACKEND
                if self.snapshot_repository is not None
                else None
            ),
        )

    async def shutdown(self) -> None:
        """Stop services, flush the cache snapshot and close the store."""
        if not self._started:
            return
        await self.executor.shutdown()
        await self.cache.shutdown()
        if self.snapshot_repository is not None:
            try:
                await self.snapshot_repository.close()
            except Exception as e:
                logger.warning("Failed to close snapshot repository", error=str(e))
        self._started = False
        logger.info("Event discovery services stopped")


@asynccontextmanager
async def lifespan(container: Optional[ServiceContainer] = None) -> AsyncIterator[ServiceContainer]:
    """Start the container for the duration of the block."""
    container = container or get_container()
    await container.start()
    try:
        yield container
    finally:
        await container.shutdown()


@lru_cache()
def get_container() -> ServiceContainer:
    """Get the process-wide service container."""
    return ServiceContainer()
