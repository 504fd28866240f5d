"""
Retry Policy

Error classification and the tenacity retry loop used for outbound API
calls. Authorization and validation failures are never retried; every other
failure is retried with exponential backoff.
"""

import asyncio
from typing import Callable, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_any,
    wait_exponential,
)

from ...core.scheduling import Clock
from ...domain.resilience.value_objects import ApiCallOptions
from .exceptions import NON_RETRYABLE_KINDS, ApiTimeoutException, ErrorKind

logger = structlog.get_logger(__name__)

_STATUS_KINDS = {
    400: ErrorKind.BAD_REQUEST,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    422: ErrorKind.BAD_REQUEST,
    429: ErrorKind.RATE_LIMITED,
}

# Untyped errors fall back to message matching
_MESSAGE_KINDS = (
    ("invalid api key", ErrorKind.INVALID_API_KEY),
    ("unauthorized", ErrorKind.UNAUTHORIZED),
    ("forbidden", ErrorKind.FORBIDDEN),
    ("not found", ErrorKind.NOT_FOUND),
    ("bad request", ErrorKind.BAD_REQUEST),
)


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an error kind."""
    if status_code in _STATUS_KINDS:
        return _STATUS_KINDS[status_code]
    if status_code >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorKind:
    """Classify an exception raised by an outbound call."""
    kind = getattr(error, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    if isinstance(error, (ApiTimeoutException, asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code)
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ErrorKind.TRANSIENT

    message = str(error).lower()
    for phrase, message_kind in _MESSAGE_KINDS:
        if phrase in message:
            return message_kind
    return ErrorKind.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    # Cancellation and interpreter exits propagate untouched
    if not isinstance(error, Exception):
        return False
    return classify_error(error) not in NON_RETRYABLE_KINDS


def build_retrying(
    options: ApiCallOptions,
    clock: Clock,
    abort_when: Optional[Callable[[], bool]] = None,
    api_name: str = "unknown",
) -> AsyncRetrying:
    """
    Create the retry loop for one call.

    Args:
        options: Attempt count and backoff base
        clock: Clock whose sleep() is used between attempts
        abort_when: Extra stop condition checked after each failed attempt
        api_name: Name used in log events

    Returns:
        AsyncRetrying that re-raises the last underlying error
    """
    stop = stop_after_attempt(options.retries)
    if abort_when is not None:
        stop = stop_any(stop, lambda retry_state: abort_when())

    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "API call failed, retrying",
            component="resilient_executor",
            action="retry",
            api_name=api_name,
            attempt=retry_state.attempt_number,
            max_attempts=options.retries,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error),
        )

    return AsyncRetrying(
        stop=stop,
        wait=wait_exponential(multiplier=options.retry_delay_seconds, exp_base=2),
        retry=retry_if_exception(is_retryable),
        sleep=clock.sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
