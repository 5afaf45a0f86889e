from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


class RateLimiter:
    """Minimum-interval limiter shared by every outbound call of one process.

    Each call to :meth:`wait` returns no earlier than ``min_interval_s`` after the
    previous one returned, so N calls span at least ``(N - 1) * min_interval_s``.
    The last-request timestamp is guarded by an ``asyncio.Lock``; concurrent
    workers queue on it in arrival order.
    """

    def __init__(
        self,
        min_interval_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last: float | None = None

    @classmethod
    def per_second(cls, max_requests: float) -> "RateLimiter":
        return cls(1.0 / max_requests)

    async def wait(self) -> None:
        async with self._lock:
            if self._last is not None:
                # Loop: timers may fire marginally early.
                delay = self._last + self.min_interval_s - self._clock()
                while delay > 0:
                    await self._sleep(delay)
                    delay = self._last + self.min_interval_s - self._clock()
            self._last = self._clock()
