"""Sliding-window rate limiting for report intake and staff actions."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Protocol

from modengine.domain.errors import RateLimitExceeded
from modengine.obs import metrics


class SlidingWindowLimiter(Protocol):
    """Admit-or-reject counter keyed by caller over a rolling window."""

    limit: int
    window_seconds: int

    async def hit(self, key: str, *, now: datetime) -> int:
        """Record one event for ``key`` and return the count inside the window.

        Raises :class:`RateLimitExceeded` (without recording) when the window
        is already full.
        """
        ...


@dataclass
class InMemorySlidingWindowLimiter(SlidingWindowLimiter):
    name: str
    limit: int
    window_seconds: int
    _events: dict[str, Deque[float]] = field(default_factory=lambda: defaultdict(deque))
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def hit(self, key: str, *, now: datetime) -> int:
        stamp = now.timestamp()
        async with self._lock:
            events = self._events[key]
            floor = stamp - self.window_seconds
            while events and events[0] <= floor:
                events.popleft()
            if len(events) >= self.limit:
                metrics.inc_rate_limited(self.name)
                raise RateLimitExceeded(
                    retry_after_seconds=int(events[0] + self.window_seconds - stamp) + 1,
                    limit=self.limit,
                    window_seconds=self.window_seconds,
                )
            events.append(stamp)
            return len(events)
