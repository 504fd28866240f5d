"""
Resilience Services

Rate limiting, circuit breaking, retries and request queueing for calls to
external event APIs.
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerMetrics
from .exceptions import (
    NON_RETRYABLE_KINDS,
    ApiCallException,
    ApiTimeoutException,
    CircuitBreakerOpenException,
    ErrorKind,
    RequestQueueClosedException,
    ResilienceException,
)
from .executor import ResilientExecutor
from .request_queue import QueuedRequest, RequestQueue
from .retry import build_retrying, classify_error, classify_status, is_retryable
from .strategies import SlidingWindowLimiter

__all__ = [
    "ApiCallException",
    "ApiTimeoutException",
    "CircuitBreaker",
    "CircuitBreakerMetrics",
    "CircuitBreakerOpenException",
    "ErrorKind",
    "NON_RETRYABLE_KINDS",
    "QueuedRequest",
    "RequestQueue",
    "RequestQueueClosedException",
    "ResilienceException",
    "ResilientExecutor",
    "SlidingWindowLimiter",
    "build_retrying",
    "classify_error",
    "classify_status",
    "is_retryable",
]
