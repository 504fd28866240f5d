"""
Resilience Exceptions

Errors surfaced by the resilience layer. Every exception carries a message,
a stable error code and structured details for logging.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Failure classes driving the retry decision table."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    INVALID_API_KEY = "invalid_api_key"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


NON_RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.UNAUTHORIZED,
        ErrorKind.FORBIDDEN,
        ErrorKind.NOT_FOUND,
        ErrorKind.BAD_REQUEST,
        ErrorKind.INVALID_API_KEY,
    }
)


class ResilienceException(Exception):
    """Base exception for errors raised by the resilience layer."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class CircuitBreakerOpenException(ResilienceException):
    """Raised without any attempt while an API's circuit is open."""

    def __init__(self, api_name: str, retry_at: Optional[float] = None):
        details: Dict[str, Any] = {"api_name": api_name, "service_status": "unavailable"}
        if retry_at is not None:
            details["retry_at"] = retry_at
        self.api_name = api_name
        self.retry_at = retry_at

        super().__init__(
            message=f"Circuit breaker is open for {api_name}",
            error_code="CIRCUIT_BREAKER_OPEN",
            details=details,
        )


class ApiTimeoutException(ResilienceException):
    """Raised when a single attempt does not settle in time."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, api_name: str, timeout_seconds: float):
        self.api_name = api_name
        self.timeout_seconds = timeout_seconds

        super().__init__(
            message=f"Request timeout: {api_name} call exceeded {timeout_seconds}s",
            error_code="API_TIMEOUT",
            details={"api_name": api_name, "timeout_seconds": timeout_seconds},
        )


class ApiCallException(ResilienceException):
    """
    Structured failure raised by API adapters.

    The kind decides whether the call is retried; status_code is kept for
    diagnostics.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        api_name: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        self.kind = kind
        self.api_name = api_name
        self.status_code = status_code

        details: Dict[str, Any] = {"kind": kind.value}
        if api_name:
            details["api_name"] = api_name
        if status_code is not None:
            details["status_code"] = status_code
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code="API_CALL_FAILED", details=details)
        if original_error:
            self.__cause__ = original_error

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_KINDS


class RequestQueueClosedException(ResilienceException):
    """Raised for queued calls still waiting when the executor shuts down."""

    def __init__(self, api_name: str):
        self.api_name = api_name
        super().__init__(
            message=f"Request queue for {api_name} was closed before the call ran",
            error_code="REQUEST_QUEUE_CLOSED",
            details={"api_name": api_name},
        )
