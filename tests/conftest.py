"""
Main pytest configuration for event discovery tests.

Shared fixtures for the cache engine and the resilience layer. Every
fixture runs on a ManualClock so time only moves when a test advances it.
"""

import os

import pytest

# Set test environment variables before importing package modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["CACHE_PERSISTENCE_BACKEND"] = "memory"

from event_discovery.core.scheduling import ManualClock
from event_discovery.domain.resilience.value_objects import (
    ApiCallOptions,
    CircuitBreakerConfig,
    RateLimitConfig,
)
from event_discovery.infrastructure.storage import InMemorySnapshotRepository
from event_discovery.services.cache.cache_engine import CacheEngine
from event_discovery.services.resilience.executor import ResilientExecutor


@pytest.fixture
def manual_clock():
    """Virtual clock starting at a fixed epoch."""
    return ManualClock(start=1_700_000_000.0)


@pytest.fixture
def snapshot_repository():
    """In-memory snapshot store."""
    return InMemorySnapshotRepository()


@pytest.fixture
def cache_engine(manual_clock):
    """Small cache without persistence."""
    return CacheEngine(max_size=3, default_ttl_seconds=60.0, clock=manual_clock)


@pytest.fixture
def persistent_cache(manual_clock, snapshot_repository):
    """Cache wired to the in-memory snapshot store."""
    return CacheEngine(
        max_size=10,
        default_ttl_seconds=300.0,
        clock=manual_clock,
        snapshot_repository=snapshot_repository,
        persistence_max_entries=5,
    )


@pytest.fixture
def fast_options():
    """Call options with short backoff and no timeout."""
    return ApiCallOptions(retries=3, retry_delay_seconds=0.1, timeout_seconds=None)


@pytest.fixture
def executor(manual_clock, fast_options):
    """Executor with one rate-limited test API and a fragile breaker."""
    return ResilientExecutor(
        rate_limits={
            "limited": RateLimitConfig(
                max_requests=3, window_seconds=1.0, retry_after_seconds=0.5
            )
        },
        default_circuit_breaker=CircuitBreakerConfig(
            failure_threshold=2,
            reset_timeout_seconds=0.1,
            monitoring_period_seconds=300.0,
        ),
        default_options=fast_options,
        clock=manual_clock,
        cleanup_interval_seconds=60.0,
    )
