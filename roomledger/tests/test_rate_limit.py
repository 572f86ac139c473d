from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from roomledger.app.errors import RateLimitedError
from roomledger.app.feature_gates import InMemoryCounterCache, RateLimiter, RateLimitWindow


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_counter_cache_expires_entries() -> None:
    clock = FakeClock()
    cache = InMemoryCounterCache(clock=clock)

    assert cache.increment("k", 10) == 1
    assert cache.increment("k", 10) == 2
    clock.now += 10
    assert cache.increment("k", 10) == 1


def test_counter_cache_is_bounded() -> None:
    clock = FakeClock()
    cache = InMemoryCounterCache(max_keys=3, clock=clock)

    cache.increment("a", 100)
    cache.increment("b", 5)
    cache.increment("c", 50)
    cache.increment("d", 100)

    assert len(cache) == 3
    assert cache.increment("b", 5) == 1


def test_limiter_blocks_after_window_limit() -> None:
    clock = FakeClock(now=60.0)
    limiter = RateLimiter(
        InMemoryCounterCache(),
        windows=[RateLimitWindow(name="minute", seconds=60, limit=2)],
        clock=clock,
    )

    limiter.check("awards", "u1")
    limiter.check("awards", "u1")
    with pytest.raises(RateLimitedError) as exc:
        limiter.check("awards", "u1")
    assert exc.value.status_code == 429
    assert exc.value.payload["scope"] == "awards"

    limiter.check("awards", "u2")
    limiter.check("usage", "u1")

    clock.now += 60
    limiter.check("awards", "u1")


def test_global_window_applies_across_callers() -> None:
    limiter = RateLimiter(
        InMemoryCounterCache(),
        windows=[RateLimitWindow(name="minute", seconds=60, limit=100)],
        global_windows=[RateLimitWindow(name="minute", seconds=60, limit=3)],
        clock=FakeClock(),
    )

    for caller in ("a", "b", "c"):
        limiter.check("usage", caller)
    with pytest.raises(RateLimitedError):
        limiter.check("usage", "d")
