"""
Unit tests for error classification and the retry loop.
"""

import asyncio

import httpx
import pytest

from event_discovery.domain.resilience.value_objects import ApiCallOptions
from event_discovery.services.resilience.exceptions import (
    ApiCallException,
    ApiTimeoutException,
    ErrorKind,
)
from event_discovery.services.resilience.retry import (
    build_retrying,
    classify_error,
    classify_status,
    is_retryable,
)


def http_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.com/events")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(
        f"HTTP {status_code}", request=request, response=response
    )


class TestErrorClassification:
    """Test the retry decision table."""

    @pytest.mark.parametrize(
        "status_code,kind",
        [
            (400, ErrorKind.BAD_REQUEST),
            (401, ErrorKind.UNAUTHORIZED),
            (403, ErrorKind.FORBIDDEN),
            (404, ErrorKind.NOT_FOUND),
            (422, ErrorKind.BAD_REQUEST),
            (429, ErrorKind.RATE_LIMITED),
            (500, ErrorKind.TRANSIENT),
            (503, ErrorKind.TRANSIENT),
            (302, ErrorKind.UNKNOWN),
        ],
    )
    def test_classify_status(self, status_code, kind):
        assert classify_status(status_code) == kind

    def test_http_status_errors(self):
        assert classify_error(http_error(401)) == ErrorKind.UNAUTHORIZED
        assert not is_retryable(http_error(404))
        assert is_retryable(http_error(429))
        assert is_retryable(http_error(502))

    def test_explicit_kind_wins(self):
        error = ApiCallException(
            "upstream said not found", kind=ErrorKind.TRANSIENT, status_code=404
        )
        assert classify_error(error) == ErrorKind.TRANSIENT
        assert error.retryable

    def test_timeouts_are_retryable(self):
        assert classify_error(ApiTimeoutException("rapidapi", 5.0)) == ErrorKind.TIMEOUT
        assert classify_error(asyncio.TimeoutError()) == ErrorKind.TIMEOUT
        assert is_retryable(httpx.ReadTimeout("slow"))

    def test_transport_errors_are_transient(self):
        assert classify_error(httpx.ConnectError("refused")) == ErrorKind.TRANSIENT
        assert classify_error(ConnectionResetError()) == ErrorKind.TRANSIENT

    @pytest.mark.parametrize(
        "message,kind",
        [
            ("401 Unauthorized", ErrorKind.UNAUTHORIZED),
            ("Forbidden resource", ErrorKind.FORBIDDEN),
            ("Event not found", ErrorKind.NOT_FOUND),
            ("Bad Request: missing city", ErrorKind.BAD_REQUEST),
            ("Invalid API key supplied", ErrorKind.INVALID_API_KEY),
            ("socket hang up", ErrorKind.UNKNOWN),
        ],
    )
    def test_message_fallback(self, message, kind):
        assert classify_error(RuntimeError(message)) == kind

    def test_unknown_errors_are_retried(self):
        assert is_retryable(RuntimeError("socket hang up"))
        assert not is_retryable(RuntimeError("invalid api key"))

    def test_base_exceptions_are_not_retried(self):
        assert not is_retryable(asyncio.CancelledError())
        assert not is_retryable(KeyboardInterrupt())


class TestRetryLoop:
    """Test the tenacity retry loop on a virtual clock."""

    @pytest.mark.asyncio
    async def test_exponential_backoff(self, manual_clock):
        attempts = []

        async def flaky():
            attempts.append(manual_clock.now())
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "ok"

        retrying = build_retrying(
            ApiCallOptions(retries=3, retry_delay_seconds=0.1), manual_clock
        )

        assert await retrying(flaky) == "ok"
        assert len(attempts) == 3
        assert manual_clock.sleeps == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_exhausted_retries_reraise_last_error(self, manual_clock):
        calls = []

        async def failing():
            calls.append(True)
            raise ConnectionError(f"attempt {len(calls)}")

        retrying = build_retrying(
            ApiCallOptions(retries=3, retry_delay_seconds=1.0), manual_clock
        )

        with pytest.raises(ConnectionError, match="attempt 3"):
            await retrying(failing)
        assert manual_clock.sleeps == pytest.approx([1.0, 2.0])

    @pytest.mark.asyncio
    async def test_non_retryable_error_stops_immediately(self, manual_clock):
        calls = []

        async def unauthorized():
            calls.append(True)
            raise http_error(401)

        retrying = build_retrying(ApiCallOptions(retries=5), manual_clock)

        with pytest.raises(httpx.HTTPStatusError):
            await retrying(unauthorized)
        assert len(calls) == 1
        assert manual_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_abort_condition_stops_loop(self, manual_clock):
        calls = []

        async def failing():
            calls.append(True)
            raise ConnectionError("reset")

        retrying = build_retrying(
            ApiCallOptions(retries=5, retry_delay_seconds=0.1),
            manual_clock,
            abort_when=lambda: len(calls) >= 2,
        )

        with pytest.raises(ConnectionError):
            await retrying(failing)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_cancellation_is_never_retried(self, manual_clock):
        calls = []

        async def cancelled():
            calls.append(True)
            raise asyncio.CancelledError()

        retrying = build_retrying(ApiCallOptions(retries=5), manual_clock)

        with pytest.raises(asyncio.CancelledError):
            await retrying(cancelled)
        assert len(calls) == 1
        assert manual_clock.sleeps == []
