"""
Unit tests for the sliding-window limiter and the request queue.
"""

import asyncio

import pytest

from event_discovery.domain.resilience.value_objects import (
    ApiCallOptions,
    RateLimitConfig,
    RequestPriority,
)
from event_discovery.services.resilience.request_queue import QueuedRequest, RequestQueue
from event_discovery.services.resilience.strategies import SlidingWindowLimiter


class TestSlidingWindowLimiter:
    """Test window accounting."""

    @pytest.fixture
    def limiter(self):
        return SlidingWindowLimiter(RateLimitConfig(max_requests=3, window_seconds=1.0))

    def test_fourth_request_in_window_denied(self, limiter):
        for offset in (0.0, 0.1, 0.2):
            assert limiter.allows(100.0 + offset)
            limiter.record(100.0 + offset)

        assert not limiter.allows(100.5)

    def test_capacity_frees_when_window_slides(self, limiter):
        for offset in (0.0, 0.1, 0.2):
            limiter.record(100.0 + offset)

        assert not limiter.allows(100.9)
        assert limiter.allows(101.0)
        limiter.record(101.0)
        assert not limiter.allows(101.05)

    def test_retry_after(self, limiter):
        limiter.record(100.0)
        limiter.record(100.4)

        assert limiter.retry_after(100.5) == pytest.approx(0.5)

    def test_discard_forgets_unsettled_record(self, limiter):
        kept = limiter.record(1.0)
        dropped = limiter.record(1.0)

        limiter.discard(dropped)
        limiter.discard(dropped)

        assert len(limiter) == 1
        assert limiter.allows(1.5)
        kept.success = True
        assert limiter.success_count == 1

    def test_outcome_counts(self, limiter):
        limiter.record(1.0).success = True
        limiter.record(1.1).success = False
        limiter.record(1.2)

        assert limiter.success_count == 1
        assert limiter.failure_count == 1
        assert len(limiter) == 3

    def test_prune_with_explicit_age(self):
        limiter = SlidingWindowLimiter()
        limiter.record(0.0)
        limiter.record(50.0)

        assert limiter.prune(100.0) == 0
        assert limiter.prune(100.0, max_age_seconds=60.0) == 1
        assert len(limiter) == 1

    def test_unconfigured_limiter_never_denies(self):
        limiter = SlidingWindowLimiter()
        for index in range(100):
            limiter.record(float(index))

        assert limiter.allows(100.0)
        assert limiter.retry_after(100.0) == 0.0


class TestRequestQueue:
    """Test priority-then-FIFO ordering."""

    def make_request(self, loop, label, priority=RequestPriority.NORMAL):
        async def call():
            return label

        return QueuedRequest(
            call=call,
            options=ApiCallOptions(priority=priority),
            future=loop.create_future(),
            enqueued_at=0.0,
            priority=priority,
        )

    @pytest.mark.asyncio
    async def test_high_priority_first_then_fifo(self):
        loop = asyncio.get_running_loop()
        queue = RequestQueue("limited")
        labels = [
            ("n1", RequestPriority.NORMAL),
            ("h1", RequestPriority.HIGH),
            ("l1", RequestPriority.LOW),
            ("h2", RequestPriority.HIGH),
            ("n2", RequestPriority.NORMAL),
        ]
        requests = {label: self.make_request(loop, label, p) for label, p in labels}
        for label, _ in labels:
            queue.push(requests[label])

        order = []
        while queue:
            request = queue.pop()
            order.append(await request.call())

        assert order == ["h1", "h2", "n1", "l1", "n2"]

    @pytest.mark.asyncio
    async def test_abandoned_requests_skipped(self):
        loop = asyncio.get_running_loop()
        queue = RequestQueue("limited")
        gone = self.make_request(loop, "gone")
        kept = self.make_request(loop, "kept")
        queue.push(gone)
        queue.push(kept)

        gone.future.cancel()

        assert queue.pop() is kept
        assert queue.pop() is None

    @pytest.mark.asyncio
    async def test_drain_all(self):
        loop = asyncio.get_running_loop()
        queue = RequestQueue("limited")
        queue.push(self.make_request(loop, "a"))
        queue.push(self.make_request(loop, "b", RequestPriority.HIGH))

        drained = queue.drain_all()

        assert [await request.call() for request in drained] == ["b", "a"]
        assert len(queue) == 0
