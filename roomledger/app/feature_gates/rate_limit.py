"""Fixed-window rate limiting over an injected counter cache."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Sequence

from ..errors import RateLimitedError

logger = logging.getLogger(__name__)


class CounterCache(Protocol):
    """Counter storage with per-key expiry."""

    def increment(self, key: str, ttl_seconds: float) -> int:
        """Add one to ``key`` and return the new value; the key expires after ``ttl_seconds``."""


@dataclass
class _CounterEntry:
    value: int
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryCounterCache:
    """Bounded in-memory counters suitable for tests and single-instance deployments.

    When full, expired entries are dropped first and then the entries closest
    to expiry are evicted.
    """

    def __init__(self, *, max_keys: int = 10_000, clock: Optional[Callable[[], float]] = None) -> None:
        if max_keys < 1:
            raise ValueError("max_keys must be >= 1")
        self._entries: Dict[str, _CounterEntry] = {}
        self._max_keys = max_keys
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()

    def increment(self, key: str, ttl_seconds: float) -> int:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                if key not in self._entries and len(self._entries) >= self._max_keys:
                    self._evict(now)
                entry = _CounterEntry(value=0, expires_at=now + max(ttl_seconds, 0.0))
                self._entries[key] = entry
            entry.value += 1
            return entry.value

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._entries.pop(key, None)
        overflow = len(self._entries) - self._max_keys + 1
        if overflow <= 0:
            return
        oldest = sorted(self._entries.items(), key=lambda item: item[1].expires_at)[:overflow]
        for key, _ in oldest:
            self._entries.pop(key, None)
        logger.debug("Evicted %s rate limit counters", overflow)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


@dataclass(frozen=True)
class RateLimitWindow:
    name: str
    seconds: int
    limit: int


def default_windows(per_minute: int, per_hour: int) -> Sequence[RateLimitWindow]:
    return (
        RateLimitWindow(name="minute", seconds=60, limit=per_minute),
        RateLimitWindow(name="hour", seconds=3600, limit=per_hour),
    )


class RateLimiter:
    """Counts requests per caller and scope, plus a global count per scope."""

    def __init__(
        self,
        cache: CounterCache,
        *,
        windows: Sequence[RateLimitWindow],
        global_windows: Sequence[RateLimitWindow] = (),
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._cache = cache
        self._windows = tuple(windows)
        self._global_windows = tuple(global_windows)
        self._clock = clock or time.time

    def check(self, scope: str, caller: str) -> None:
        """Count one request and raise ``RateLimitedError`` when any window is exceeded."""

        now = self._clock()
        for window in self._global_windows:
            self._hit(f"global:{scope}", window, now, scope)
        for window in self._windows:
            self._hit(f"{scope}:{caller}", window, now, scope)

    def _hit(self, key: str, window: RateLimitWindow, now: float, scope: str) -> None:
        bucket = int(now // window.seconds)
        count = self._cache.increment(f"{key}:{window.name}:{bucket}", window.seconds)
        if count > window.limit:
            logger.warning("Rate limit exceeded for %s (%s window)", key, window.name)
            raise RateLimitedError(scope=scope)


__all__ = [
    "CounterCache",
    "InMemoryCounterCache",
    "RateLimitWindow",
    "RateLimiter",
    "default_windows",
]
