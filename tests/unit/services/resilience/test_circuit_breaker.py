"""
Unit tests for the circuit breaker state machine.
"""

import pytest

from event_discovery.domain.resilience.value_objects import (
    CircuitBreakerConfig,
    CircuitState,
)
from event_discovery.services.resilience.circuit_breaker import CircuitBreaker
from event_discovery.services.resilience.exceptions import CircuitBreakerOpenException


@pytest.fixture
def breaker(manual_clock):
    config = CircuitBreakerConfig(
        failure_threshold=3, reset_timeout_seconds=10.0, monitoring_period_seconds=60.0
    )
    return CircuitBreaker("ticketmaster", config, manual_clock)


class TestCircuitBreakerTransitions:
    """Test closed/open/half-open transitions."""

    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        breaker.ensure_available()

    def test_opens_at_threshold(self, breaker, manual_clock):
        for _ in range(3):
            breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.next_attempt_at == manual_clock.now() + 10.0
        assert breaker.metrics.circuit_opens == 1

    def test_open_rejects_calls(self, breaker):
        for _ in range(3):
            breaker.record_failure()

        with pytest.raises(CircuitBreakerOpenException) as exc_info:
            breaker.ensure_available()

        assert exc_info.value.error_code == "CIRCUIT_BREAKER_OPEN"
        assert exc_info.value.retry_at == breaker.next_attempt_at
        assert "ticketmaster" in str(exc_info.value)
        assert breaker.metrics.rejected_calls == 1

    @pytest.mark.asyncio
    async def test_half_open_after_reset_timeout(self, breaker, manual_clock):
        for _ in range(3):
            breaker.record_failure()

        await manual_clock.advance(9.0)
        assert breaker.is_open()

        await manual_clock.advance(1.0)
        assert breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_half_open_success_closes_and_resets(self, breaker, manual_clock):
        for _ in range(3):
            breaker.record_failure()
        await manual_clock.advance(10.0)

        breaker.ensure_available()
        breaker.record_success()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failures == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, manual_clock):
        for _ in range(3):
            breaker.record_failure()
        await manual_clock.advance(10.0)

        breaker.ensure_available()
        breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.next_attempt_at == manual_clock.now() + 10.0
        assert breaker.metrics.circuit_opens == 2

    @pytest.mark.asyncio
    async def test_half_open_allows_single_trial(self, breaker, manual_clock):
        for _ in range(3):
            breaker.record_failure()
        await manual_clock.advance(10.0)

        breaker.ensure_available()
        with pytest.raises(CircuitBreakerOpenException):
            breaker.ensure_available()

        breaker.release_trial()
        breaker.ensure_available()


class TestCircuitBreakerCounting:
    """Test failure accounting while closed."""

    def test_success_decays_failures(self, breaker):
        breaker.record_failure()
        breaker.record_failure()

        breaker.record_success()

        assert breaker.failures == 1
        assert breaker.state == CircuitState.CLOSED

    def test_success_never_goes_negative(self, breaker):
        breaker.record_success()
        assert breaker.failures == 0

    @pytest.mark.asyncio
    async def test_decay_after_monitoring_period(self, breaker, manual_clock):
        breaker.record_failure()
        breaker.record_failure()

        assert breaker.decay(manual_clock.now() + 30.0) is False
        assert breaker.decay(manual_clock.now() + 61.0) is True
        assert breaker.failures == 0

    def test_reset(self, breaker):
        for _ in range(3):
            breaker.record_failure()

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failures == 0
        assert breaker.next_attempt_at is None

    def test_status(self, breaker):
        breaker.record_failure()

        status = breaker.get_status()

        assert status["api_name"] == "ticketmaster"
        assert status["state"] == "closed"
        assert status["failures"] == 1
        assert status["metrics"]["failed_calls"] == 1
        assert status["config"]["failure_threshold"] == 3
