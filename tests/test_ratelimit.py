from __future__ import annotations

import asyncio
import time

import pytest

from orelens.clients.ratelimit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_consecutive_calls_are_spaced() -> None:
    clock = FakeClock()
    limiter = RateLimiter(0.1, clock=clock, sleep=clock.sleep)

    async def _run() -> None:
        for _ in range(5):
            await limiter.wait()

    asyncio.run(_run())
    assert clock.now == pytest.approx(0.4)
    assert len(clock.sleeps) == 4


def test_concurrent_callers_share_the_interval() -> None:
    limiter = RateLimiter(0.02)
    n = 6

    async def _run() -> float:
        t0 = time.monotonic()
        await asyncio.gather(*(limiter.wait() for _ in range(n)))
        return time.monotonic() - t0

    elapsed = asyncio.run(_run())
    assert elapsed >= (n - 1) * 0.02


def test_per_second_and_validation() -> None:
    assert RateLimiter.per_second(10).min_interval_s == pytest.approx(0.1)
    with pytest.raises(ValueError):
        RateLimiter(-1)
