from __future__ import annotations

import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict


class RateLimiter:
    """Interface the command layer consults before calling the core."""

    def allow(self, user_id: int) -> bool:
        raise NotImplementedError


class NoRateLimit(RateLimiter):
    def allow(self, user_id: int) -> bool:
        return True


class SlidingWindowRateLimiter(RateLimiter):
    """At most `max_requests` per user within the trailing `window_seconds`. Single process."""

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window = window_seconds
        self.clock = clock
        self._hits: Dict[int, Deque[float]] = defaultdict(deque)

    def allow(self, user_id: int) -> bool:
        now = self.clock()
        hits = self._hits[user_id]
        while hits and now - hits[0] >= self.window:
            hits.popleft()
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True
