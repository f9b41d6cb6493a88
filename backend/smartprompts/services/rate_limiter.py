"""
Fixed-window request throttling.

``RateLimiter`` is the interface callers depend on. ``InMemoryRateLimiter``
keeps counters in process memory, so every worker process has its own
independent counter space. A deployment with several instances needs a
shared implementation (e.g. Redis) behind the same interface.
"""

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    """Outcome of a rate limit decision."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds
    reset_in: float  # seconds until the window ends

    @property
    def reset_at_ms(self) -> int:
        return int(self.reset_at * 1000)


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter(ABC):
    """Contract shared by all rate limiter backends."""

    @abstractmethod
    def check(self, key: str, limit: int, window_seconds: float) -> RateLimitResult:
        """Record one request for ``key`` if it fits in the current window."""

    @abstractmethod
    def inspect(self, key: str, limit: int, window_seconds: float) -> RateLimitResult:
        """Report the current state for ``key`` without consuming a slot."""

    @abstractmethod
    def clear(self, key: str) -> None:
        """Forget everything recorded for ``key``."""


class InMemoryRateLimiter(RateLimiter):
    """
    Process-local fixed-window limiter.

    Each key gets a counter and a window end. Once ``now >= reset_at`` the
    entry is replaced by a fresh window on the next access. Expired entries
    are pruned opportunistically: each ``check`` sweeps the store with
    probability ``sweep_probability``.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_probability: float = 0.01,
        rng: Callable[[], float] = random.random,
    ):
        self._clock = clock
        self._sweep_probability = sweep_probability
        self._rng = rng
        self._store: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str, limit: int, window_seconds: float) -> RateLimitResult:
        with self._lock:
            now = self._clock()

            if self._rng() < self._sweep_probability:
                self._sweep_locked(now)

            entry = self._store.get(key)
            if entry is None or now >= entry.reset_at:
                entry = _Window(count=0, reset_at=now + window_seconds)
                self._store[key] = entry

            allowed = entry.count < limit
            if allowed:
                entry.count += 1

            return RateLimitResult(
                allowed=allowed,
                limit=limit,
                remaining=max(0, limit - entry.count),
                reset_at=entry.reset_at,
                reset_in=entry.reset_at - now,
            )

    def inspect(self, key: str, limit: int, window_seconds: float) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            entry = self._store.get(key)

            if entry is None or now >= entry.reset_at:
                return RateLimitResult(
                    allowed=True,
                    limit=limit,
                    remaining=limit,
                    reset_at=now + window_seconds,
                    reset_in=window_seconds,
                )

            return RateLimitResult(
                allowed=entry.count < limit,
                limit=limit,
                remaining=max(0, limit - entry.count),
                reset_at=entry.reset_at,
                reset_in=entry.reset_at - now,
            )

    def clear(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove expired entries. Returns how many were dropped."""
        with self._lock:
            return self._sweep_locked(self._clock() if now is None else now)

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, entry in self._store.items() if entry.reset_at < now]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired rate limit entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)
