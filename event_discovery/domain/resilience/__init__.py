"""Resilience domain: per-API limits, breaker settings, call options and stats."""

from .value_objects import (
    ApiCallOptions,
    ApiStats,
    CircuitBreakerConfig,
    CircuitState,
    RateLimitConfig,
    RequestPriority,
    RequestRecord,
)

__all__ = [
    "ApiCallOptions",
    "ApiStats",
    "CircuitBreakerConfig",
    "CircuitState",
    "RateLimitConfig",
    "RequestPriority",
    "RequestRecord",
]
