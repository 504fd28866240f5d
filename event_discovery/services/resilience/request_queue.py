"""
Request Queue

Per-API queue of calls deferred by the rate limiter. High-priority calls are
served before normal and low ones; order is FIFO within each tier.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, List, Optional

from ...domain.resilience.value_objects import ApiCallOptions, RequestPriority

ApiCall = Callable[[], Awaitable[Any]]


@dataclass
class QueuedRequest:
    """A deferred call and the future its original caller is awaiting."""

    call: ApiCall
    options: ApiCallOptions
    future: "asyncio.Future[Any]"
    enqueued_at: float
    priority: RequestPriority = field(default=RequestPriority.NORMAL)

    @property
    def abandoned(self) -> bool:
        """True once the caller stopped waiting."""
        return self.future.done()


class RequestQueue:
    """Two-tier priority queue of deferred API calls."""

    def __init__(self, api_name: str):
        self.api_name = api_name
        self._high: Deque[QueuedRequest] = deque()
        self._standard: Deque[QueuedRequest] = deque()

    def __len__(self) -> int:
        return len(self._high) + len(self._standard)

    def __bool__(self) -> bool:
        return len(self) > 0

    def push(self, request: QueuedRequest) -> None:
        if request.priority == RequestPriority.HIGH:
            self._high.append(request)
        else:
            self._standard.append(request)

    def pop(self) -> Optional[QueuedRequest]:
        """Next live request, skipping callers that gave up."""
        while self._high or self._standard:
            tier = self._high if self._high else self._standard
            request = tier.popleft()
            if not request.abandoned:
                return request
        return None

    def drain_all(self) -> List[QueuedRequest]:
        """Remove and return every waiting request."""
        requests = [r for r in list(self._high) + list(self._standard) if not r.abandoned]
        self._high.clear()
        self._standard.clear()
        return requests
