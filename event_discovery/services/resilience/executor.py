"""
Resilient Executor

Wraps outbound calls to named external APIs with a sliding-window rate
limit, a per-API circuit breaker, per-attempt timeouts and retries with
exponential backoff. Calls that hit the rate limit are queued and drained
once capacity frees up.
"""

import asyncio
import functools
from typing import Any, Dict, List, Mapping, Optional

import structlog
from opentelemetry import trace

from ...constants import DEFAULT_RATE_LIMITS, DEFAULT_RETRY_AFTER_SECONDS
from ...core.metrics import API_CALL_ATTEMPTS, API_CALL_REJECTIONS, QUEUE_DEPTH
from ...core.scheduling import Clock, PeriodicTask, SystemClock, TimerHandle
from ...domain.resilience.value_objects import (
    ApiCallOptions,
    ApiStats,
    CircuitBreakerConfig,
    CircuitState,
    RateLimitConfig,
)
from .circuit_breaker import CircuitBreaker
from .exceptions import (
    ApiTimeoutException,
    CircuitBreakerOpenException,
    RequestQueueClosedException,
)
from .request_queue import ApiCall, QueuedRequest, RequestQueue
from .retry import build_retrying, classify_error
from .strategies import SlidingWindowLimiter

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class ResilientExecutor:
    """
    Executes API calls with rate limiting, circuit breaking and retries.

    APIs are addressed by name. Known providers get their default rate
    limits; any other name gets the default circuit breaker and no rate
    limit. State is created lazily on first use.
    """

    def __init__(
        self,
        rate_limits: Optional[Mapping[str, RateLimitConfig]] = None,
        circuit_breakers: Optional[Mapping[str, CircuitBreakerConfig]] = None,
        default_circuit_breaker: Optional[CircuitBreakerConfig] = None,
        default_options: Optional[ApiCallOptions] = None,
        clock: Optional[Clock] = None,
        cleanup_interval_seconds: float = 60.0,
    ):
        self.clock = clock or SystemClock()
        self.default_circuit_breaker = default_circuit_breaker or CircuitBreakerConfig()
        self.default_options = default_options or ApiCallOptions()

        self._rate_limits: Dict[str, RateLimitConfig] = dict(
            DEFAULT_RATE_LIMITS if rate_limits is None else rate_limits
        )
        self._breaker_configs: Dict[str, CircuitBreakerConfig] = dict(circuit_breakers or {})

        self._limiters: Dict[str, SlidingWindowLimiter] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._queues: Dict[str, RequestQueue] = {}
        self._drain_handles: Dict[str, TimerHandle] = {}

        self._cleanup_task = PeriodicTask(
            self.clock,
            cleanup_interval_seconds,
            self._run_cleanup,
            name="resilience_cleanup",
        )
        self._closed = False

    # Configuration

    def configure_api(
        self,
        api_name: str,
        rate_limit: Optional[RateLimitConfig] = None,
        circuit_breaker: Optional[CircuitBreakerConfig] = None,
    ) -> None:
        """Register or override the configuration of one API."""
        if rate_limit is not None:
            self._rate_limits[api_name] = rate_limit
            if api_name in self._limiters:
                self._limiters[api_name].config = rate_limit
        if circuit_breaker is not None:
            self._breaker_configs[api_name] = circuit_breaker
            if api_name in self._breakers:
                self._breakers[api_name].config = circuit_breaker

        logger.info(
            "API configured",
            component="resilient_executor",
            action="configure_api",
            api_name=api_name,
            rate_limit=str(self._rate_limits.get(api_name)),
        )

    def get_rate_limit(self, api_name: str) -> Optional[RateLimitConfig]:
        return self._rate_limits.get(api_name)

    def get_circuit_breaker(self, api_name: str) -> CircuitBreaker:
        """Circuit breaker for an API, created on first use."""
        breaker = self._breakers.get(api_name)
        if breaker is None:
            config = self._breaker_configs.get(api_name, self.default_circuit_breaker)
            breaker = CircuitBreaker(api_name, config, self.clock)
            self._breakers[api_name] = breaker
        return breaker

    def _limiter(self, api_name: str) -> SlidingWindowLimiter:
        limiter = self._limiters.get(api_name)
        if limiter is None:
            limiter = SlidingWindowLimiter(self._rate_limits.get(api_name))
            self._limiters[api_name] = limiter
        return limiter

    def _queue(self, api_name: str) -> RequestQueue:
        queue = self._queues.get(api_name)
        if queue is None:
            queue = RequestQueue(api_name)
            self._queues[api_name] = queue
        return queue

    # Calls

    def can_make_request(self, api_name: str) -> bool:
        """Check the sliding window without recording anything."""
        return self._limiter(api_name).allows(self.clock.now())

    async def execute_api_call(
        self,
        api_name: str,
        call: ApiCall,
        options: Optional[ApiCallOptions] = None,
    ) -> Any:
        """
        Execute an API call with resilience patterns applied.

        Args:
            api_name: Name of the external API
            call: Zero-argument callable returning an awaitable; invoked once
                per attempt
            options: Retry, timeout and priority options

        Returns:
            The call's result

        Raises:
            CircuitBreakerOpenException: If the API's circuit is open
            ApiTimeoutException: If the last attempt timed out
            RequestQueueClosedException: If the executor shut down while the
                call was queued
            Exception: The last underlying error once retries are exhausted
        """
        options = options or self.default_options

        with tracer.start_as_current_span("resilience.execute_api_call") as span:
            span.set_attribute("api.name", api_name)
            span.set_attribute("api.retries", options.retries)

            breaker = self.get_circuit_breaker(api_name)
            if breaker.is_open():
                self._reject_open(breaker)

            if not self.can_make_request(api_name):
                span.set_attribute("api.queued", True)
                return await self._enqueue(api_name, call, options)

            try:
                return await self._run_with_retries(api_name, call, options)
            except Exception as e:
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    def _reject_open(self, breaker: CircuitBreaker) -> None:
        API_CALL_REJECTIONS.labels(api_name=breaker.api_name, reason="circuit_open").inc()
        logger.warning(
            "Circuit breaker open, rejecting call",
            component="resilient_executor",
            action="circuit_rejected",
            api_name=breaker.api_name,
            next_attempt_at=breaker.next_attempt_at,
        )
        raise CircuitBreakerOpenException(breaker.api_name, retry_at=breaker.next_attempt_at)

    async def _run_with_retries(
        self, api_name: str, call: ApiCall, options: ApiCallOptions
    ) -> Any:
        breaker = self.get_circuit_breaker(api_name)
        try:
            breaker.ensure_available()
        except CircuitBreakerOpenException:
            API_CALL_REJECTIONS.labels(api_name=api_name, reason="circuit_open").inc()
            logger.warning(
                "Circuit breaker not accepting calls",
                component="resilient_executor",
                action="circuit_rejected",
                api_name=api_name,
                state=breaker.state.value,
            )
            raise

        retrying = build_retrying(
            options,
            self.clock,
            abort_when=breaker.is_open,
            api_name=api_name,
        )
        return await retrying(self._attempt, api_name, call, options)

    async def _attempt(self, api_name: str, call: ApiCall, options: ApiCallOptions) -> Any:
        breaker = self.get_circuit_breaker(api_name)
        limiter = self._limiter(api_name)
        record = limiter.record(self.clock.now())

        try:
            if options.timeout_seconds is None:
                result = await call()
            else:
                result = await self._call_with_timeout(api_name, call, options.timeout_seconds)
        except asyncio.CancelledError:
            # A cancelled attempt never settled; it is neither success nor failure
            limiter.discard(record)
            breaker.release_trial()
            raise
        except Exception as e:
            record.success = False
            breaker.record_failure()
            kind = classify_error(e)
            API_CALL_ATTEMPTS.labels(api_name=api_name, outcome=kind.value).inc()
            logger.warning(
                "API call attempt failed",
                component="resilient_executor",
                action="attempt_failed",
                api_name=api_name,
                error_kind=kind.value,
                error=str(e),
                circuit_state=breaker.state.value,
            )
            raise

        record.success = True
        breaker.record_success()
        API_CALL_ATTEMPTS.labels(api_name=api_name, outcome="success").inc()
        return result

    async def _call_with_timeout(self, api_name: str, call: ApiCall, timeout_seconds: float) -> Any:
        """
        Race one attempt against a timer on the executor's clock.

        The attempt is cancelled when the timer fires first. Cancelling the
        caller cancels the attempt as well.

        Raises:
            ApiTimeoutException: If the timer fired before the call settled
        """
        task = asyncio.ensure_future(call())
        timed_out = False

        async def _expire() -> None:
            nonlocal timed_out
            if not task.done():
                timed_out = True
                task.cancel()

        handle = self.clock.call_later(timeout_seconds, _expire)
        try:
            return await task
        except asyncio.CancelledError:
            if timed_out:
                raise ApiTimeoutException(api_name, timeout_seconds) from None
            raise
        finally:
            handle.cancel()

    # Queueing

    async def _enqueue(self, api_name: str, call: ApiCall, options: ApiCallOptions) -> Any:
        if self._closed:
            raise RequestQueueClosedException(api_name)

        queue = self._queue(api_name)
        future: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        queue.push(
            QueuedRequest(
                call=call,
                options=options,
                future=future,
                enqueued_at=self.clock.now(),
                priority=options.priority,
            )
        )
        QUEUE_DEPTH.labels(api_name=api_name).set(len(queue))
        API_CALL_REJECTIONS.labels(api_name=api_name, reason="rate_limited").inc()

        logger.warning(
            "Rate limit exceeded, queueing request",
            component="resilient_executor",
            action="request_queued",
            api_name=api_name,
            priority=options.priority.value,
            queue_length=len(queue),
            retry_after=self._retry_after_seconds(api_name),
        )

        self._schedule_drain(api_name)
        return await future

    def _retry_after_seconds(self, api_name: str) -> float:
        config = self._rate_limits.get(api_name)
        return config.retry_after_seconds if config else DEFAULT_RETRY_AFTER_SECONDS

    def _schedule_drain(self, api_name: str) -> None:
        if self._closed or api_name in self._drain_handles:
            return
        # Never re-check before the oldest in-window request slides out
        delay = max(
            self._retry_after_seconds(api_name),
            self._limiter(api_name).retry_after(self.clock.now()),
        )
        self._drain_handles[api_name] = self.clock.call_later(
            delay,
            functools.partial(self._on_drain_timer, api_name),
        )

    async def _on_drain_timer(self, api_name: str) -> None:
        self._drain_handles.pop(api_name, None)
        await self.process_queue(api_name)

    async def process_queue(self, api_name: str) -> int:
        """
        Run queued calls while the rate limit has capacity.

        Calls run one at a time in priority-then-FIFO order. Each one
        re-checks the circuit breaker; its outcome is delivered to the
        waiting caller. The drain is rescheduled while calls remain.

        Returns:
            Number of queued calls that were run
        """
        queue = self._queues.get(api_name)
        if not queue:
            return 0

        processed = 0
        while queue and self.can_make_request(api_name):
            request = queue.pop()
            QUEUE_DEPTH.labels(api_name=api_name).set(len(queue))
            if request is None:
                break
            await self._run_queued(api_name, request)
            processed += 1

        if queue:
            self._schedule_drain(api_name)

        logger.debug(
            "Request queue processed",
            component="resilient_executor",
            action="queue_drained",
            api_name=api_name,
            processed=processed,
            remaining=len(queue),
        )
        return processed

    async def _run_queued(self, api_name: str, request: QueuedRequest) -> None:
        try:
            result = await self._run_with_retries(api_name, request.call, request.options)
        except asyncio.CancelledError:
            request.future.cancel()
            raise
        except Exception as e:
            if not request.future.done():
                request.future.set_exception(e)
        else:
            if not request.future.done():
                request.future.set_result(result)

    # Observability and maintenance

    def get_api_stats(self, api_name: str) -> ApiStats:
        """Request counts, breaker state and queue depth for one API."""
        limiter = self._limiters.get(api_name)
        breaker = self._breakers.get(api_name)
        queue = self._queues.get(api_name)

        total = len(limiter) if limiter else 0
        successes = limiter.success_count if limiter else 0
        failures = limiter.failure_count if limiter else 0

        return ApiStats(
            api_name=api_name,
            total_requests=total,
            success_count=successes,
            failure_count=failures,
            success_rate=successes / total if total else 0.0,
            circuit_breaker_state=breaker.state if breaker else CircuitState.CLOSED,
            queue_length=len(queue) if queue else 0,
        )

    def get_all_stats(self) -> List[ApiStats]:
        names = set(self._limiters) | set(self._breakers) | set(self._queues)
        return [self.get_api_stats(name) for name in sorted(names)]

    def cleanup(self) -> Dict[str, int]:
        """
        Prune old request history and forget stale breaker failures.

        APIs with a rate limit keep history for one window; others keep it
        for their breaker's monitoring period.
        """
        now = self.clock.now()
        pruned = 0
        for api_name, limiter in self._limiters.items():
            if limiter.config is not None:
                pruned += limiter.prune(now)
            else:
                monitoring_period = self.get_circuit_breaker(
                    api_name
                ).config.monitoring_period_seconds
                pruned += limiter.prune(now, max_age_seconds=monitoring_period)

        decayed = sum(1 for breaker in self._breakers.values() if breaker.decay(now))

        if pruned or decayed:
            logger.debug(
                "Resilience state cleaned up",
                component="resilient_executor",
                action="cleanup",
                pruned_records=pruned,
                reset_breakers=decayed,
            )
        return {"pruned_records": pruned, "reset_breakers": decayed}

    async def _run_cleanup(self) -> None:
        self.cleanup()

    async def start(self) -> None:
        """Start the periodic cleanup."""
        self._closed = False
        self._cleanup_task.start()
        logger.info(
            "Resilient executor started",
            component="resilient_executor",
            action="start",
            configured_apis=sorted(self._rate_limits),
        )

    async def shutdown(self) -> None:
        """Stop timers and reject calls still waiting in a queue."""
        self._closed = True
        self._cleanup_task.stop()

        for handle in self._drain_handles.values():
            handle.cancel()
        self._drain_handles.clear()

        rejected = 0
        for api_name, queue in self._queues.items():
            for request in queue.drain_all():
                request.future.set_exception(RequestQueueClosedException(api_name))
                rejected += 1
            QUEUE_DEPTH.labels(api_name=api_name).set(0)

        logger.info(
            "Resilient executor shut down",
            component="resilient_executor",
            action="shutdown",
            rejected_requests=rejected,
        )
