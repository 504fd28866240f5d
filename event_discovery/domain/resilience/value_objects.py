"""
Resilience Value Objects

Static per-API configuration, per-call options and the small records the
resilience layer keeps about each external API.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class RequestPriority(str, Enum):
    """Queue placement of a rate-limited call."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class RateLimitConfig(BaseModel):
    """Sliding-window rate limit for one external API."""

    max_requests: int = Field(..., ge=1, description="Requests allowed per window")
    window_seconds: float = Field(..., gt=0, description="Sliding window length")
    retry_after_seconds: float = Field(
        default=1.0, ge=0, description="Delay before a queued call is re-checked"
    )

    def __str__(self) -> str:
        return f"{self.max_requests} requests per {self.window_seconds:g}s"


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker thresholds for one external API."""

    failure_threshold: int = Field(
        default=5, ge=1, description="Failures before the circuit opens"
    )
    reset_timeout_seconds: float = Field(
        default=60.0, gt=0, description="Open duration before a trial call"
    )
    monitoring_period_seconds: float = Field(
        default=300.0, gt=0, description="Failures older than this are forgotten"
    )
    half_open_max_calls: int = Field(
        default=1, ge=1, description="Concurrent trial calls while half-open"
    )


class ApiCallOptions(BaseModel):
    """Per-call retry, timeout and queueing options."""

    retries: int = Field(default=3, ge=1, description="Total attempts")
    retry_delay_seconds: float = Field(
        default=1.0, ge=0, description="Base delay for exponential backoff"
    )
    timeout_seconds: Optional[float] = Field(
        default=10.0, gt=0, description="Per-attempt timeout, None disables it"
    )
    priority: RequestPriority = Field(
        default=RequestPriority.NORMAL, description="Queue placement when rate-limited"
    )


@dataclass(eq=False)
class RequestRecord:
    """One call attempt; success stays None while the attempt is in flight."""

    timestamp: float
    success: Optional[bool] = None


class ApiStats(BaseModel):
    """Observability snapshot for one external API."""

    api_name: str
    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0
    circuit_breaker_state: CircuitState = CircuitState.CLOSED
    queue_length: int = 0
