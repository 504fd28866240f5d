"""
Time and Scheduling Primitives

Clock abstraction shared by the cache engine and the resilience layer.
Production code runs on the wall clock and asyncio timers; tests drive a
ManualClock whose virtual time only moves when advanced explicitly.
"""

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Set, Tuple

import structlog

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle:
    """Handle for a scheduled callback; cancel() prevents it from firing."""

    def __init__(self, when: float):
        self.when = when
        self._cancelled = False
        self._loop_handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._loop_handle is not None:
            self._loop_handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class Clock(ABC):
    """Source of time, delays and one-shot timers."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds."""
        pass

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the current coroutine for the given duration."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Run an async callback once after the given delay."""
        pass


class SystemClock(Clock):
    """Wall-clock time backed by the running asyncio event loop."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        loop = asyncio.get_running_loop()
        handle = TimerHandle(self.now() + max(0.0, delay))

        def _fire() -> None:
            if handle.cancelled:
                return
            task = loop.create_task(callback())
            # Keep a strong reference until the callback finishes
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        handle._loop_handle = loop.call_later(max(0.0, delay), _fire)
        return handle


class ManualClock(Clock):
    """
    Virtual clock for deterministic tests.

    sleep() moves time forward immediately; timers fire only from advance(),
    in due-time order, with the clock set to each timer's due time.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self._timers: List[Tuple[float, int, TimerHandle, TimerCallback]] = []
        self._sequence = itertools.count()
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += max(0.0, seconds)
        await asyncio.sleep(0)

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, delay))
        heapq.heappush(
            self._timers, (handle.when, next(self._sequence), handle, callback)
        )
        return handle

    async def advance(self, seconds: float) -> None:
        """Move virtual time forward, firing every timer that falls due."""
        target = self._now + max(0.0, seconds)
        while self._timers and self._timers[0][0] <= target:
            when, _, handle, callback = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            self._now = max(self._now, when)
            await callback()
        self._now = max(self._now, target)
        await asyncio.sleep(0)

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, handle, _ in self._timers if not handle.cancelled)


class PeriodicTask:
    """Re-arming timer that runs an async callback at a fixed interval."""

    def __init__(
        self,
        clock: Clock,
        interval_seconds: float,
        callback: TimerCallback,
        name: str,
    ):
        if interval_seconds <= 0:
            raise ValueError("Periodic task interval must be positive")
        self.clock = clock
        self.interval_seconds = interval_seconds
        self.name = name
        self._callback = callback
        self._handle: Optional[TimerHandle] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._schedule()
        logger.debug("Periodic task started", task=self.name, interval=self.interval_seconds)

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        logger.debug("Periodic task stopped", task=self.name)

    def _schedule(self) -> None:
        self._handle = self.clock.call_later(self.interval_seconds, self._run)

    async def _run(self) -> None:
        if not self._running:
            return
        try:
            await self._callback()
        except Exception as e:
            logger.error("Periodic task failed", task=self.name, error=str(e))
        if self._running:
            self._schedule()
