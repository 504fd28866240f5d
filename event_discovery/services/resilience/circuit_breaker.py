"""
Circuit Breaker Implementation

Implements the circuit breaker pattern for calls to one external API
to prevent cascading failures and provide graceful degradation.

State is mutated synchronously inside a single event-loop turn, so no
lock is needed under asyncio.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from ...core.metrics import CIRCUIT_STATE
from ...core.scheduling import Clock
from ...domain.resilience.value_objects import CircuitBreakerConfig, CircuitState
from .exceptions import CircuitBreakerOpenException

logger = structlog.get_logger(__name__)

_STATE_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None


class CircuitBreaker:
    """
    Circuit breaker for one external API.

    closed -> open once failures reach the threshold; open -> half_open
    lazily on the first state check after next_attempt_at; half_open ->
    closed on a successful trial, back to open on a failed one. Successes
    while closed decay the failure count by one.
    """

    def __init__(self, api_name: str, config: CircuitBreakerConfig, clock: Clock):
        self.api_name = api_name
        self.config = config
        self.clock = clock
        self._state = CircuitState.CLOSED
        self.failures = 0
        self.last_failure_at: Optional[float] = None
        self.next_attempt_at: Optional[float] = None
        self.last_state_change_at = clock.now()
        self.metrics = CircuitBreakerMetrics()
        self._trial_calls = 0
        CIRCUIT_STATE.labels(api_name=api_name).set(0)

    @property
    def state(self) -> CircuitState:
        """Current state, applying the lazy open -> half_open transition."""
        if (
            self._state == CircuitState.OPEN
            and self.next_attempt_at is not None
            and self.clock.now() >= self.next_attempt_at
        ):
            self._transition(CircuitState.HALF_OPEN)
            logger.info(
                "Circuit breaker half-open",
                component="circuit_breaker",
                action="circuit_half_open",
                api_name=self.api_name,
                failures=self.failures,
            )
        return self._state

    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def ensure_available(self) -> None:
        """
        Admit a call or reject it.

        Raises:
            CircuitBreakerOpenException: If the circuit is open, or half-open
                with its trial slots already taken
        """
        state = self.state
        if state == CircuitState.CLOSED:
            return
        if (
            state == CircuitState.HALF_OPEN
            and self._trial_calls < self.config.half_open_max_calls
        ):
            self._trial_calls += 1
            return

        self.metrics.rejected_calls += 1
        raise CircuitBreakerOpenException(self.api_name, retry_at=self.next_attempt_at)

    def release_trial(self) -> None:
        """Give back a half-open trial slot for a call that never settled."""
        if self._state == CircuitState.HALF_OPEN and self._trial_calls > 0:
            self._trial_calls -= 1

    def record_success(self) -> None:
        """Record successful operation."""
        now = self.clock.now()
        self.metrics.successful_calls += 1
        self.metrics.last_success_time = now

        state = self.state
        if state == CircuitState.HALF_OPEN:
            self.failures = 0
            self._transition(CircuitState.CLOSED)
            logger.info(
                "Circuit breaker closed",
                component="circuit_breaker",
                action="circuit_closed",
                api_name=self.api_name,
            )
        elif state == CircuitState.CLOSED and self.failures > 0:
            self.failures -= 1

    def record_failure(self) -> None:
        """Record failed operation."""
        now = self.clock.now()
        self.metrics.failed_calls += 1
        self.metrics.last_failure_time = now
        self.failures += 1
        self.last_failure_at = now

        state = self.state
        if state == CircuitState.HALF_OPEN:
            # Immediate re-opening on a failed trial
            self._open(now)
            logger.warning(
                "Circuit breaker re-opened after failed trial call",
                component="circuit_breaker",
                action="circuit_opened",
                api_name=self.api_name,
                failures=self.failures,
            )
        elif state == CircuitState.CLOSED and self.failures >= self.config.failure_threshold:
            self._open(now)
            logger.warning(
                "Circuit breaker opened",
                component="circuit_breaker",
                action="circuit_opened",
                api_name=self.api_name,
                failures=self.failures,
                threshold=self.config.failure_threshold,
            )

    def decay(self, now: float) -> bool:
        """Forget failures older than the monitoring period."""
        if (
            self.failures
            and self.last_failure_at is not None
            and now - self.last_failure_at > self.config.monitoring_period_seconds
        ):
            self.failures = 0
            return True
        return False

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        self.failures = 0
        self.last_failure_at = None
        self.next_attempt_at = None
        self._transition(CircuitState.CLOSED)
        logger.info("Circuit breaker manually reset", api_name=self.api_name)

    def get_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status for monitoring."""
        return {
            "api_name": self.api_name,
            "state": self.state.value,
            "failures": self.failures,
            "last_failure_at": self.last_failure_at,
            "next_attempt_at": self.next_attempt_at,
            "last_state_change_at": self.last_state_change_at,
            "metrics": {
                "successful_calls": self.metrics.successful_calls,
                "failed_calls": self.metrics.failed_calls,
                "rejected_calls": self.metrics.rejected_calls,
                "circuit_opens": self.metrics.circuit_opens,
            },
            "config": self.config.model_dump(),
        }

    def _open(self, now: float) -> None:
        self.next_attempt_at = now + self.config.reset_timeout_seconds
        self.metrics.circuit_opens += 1
        self._transition(CircuitState.OPEN)

    def _transition(self, state: CircuitState) -> None:
        self._state = state
        self._trial_calls = 0
        self.last_state_change_at = self.clock.now()
        CIRCUIT_STATE.labels(api_name=self.api_name).set(_STATE_GAUGE_VALUES[state])
