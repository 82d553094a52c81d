"""
Rate Limiter Utility - Per-provider sliding window admission control.

Each provider (podcastindex, taddy, youtube, rss) gets its own window of
request timestamps. Timestamps older than the window are pruned before every
check. There is no waiting: a denied call is a terminal rate-limit failure
for that request, reported with a retry-after hint.

Usage:
    from utils.rate_limiter import SlidingWindowRateLimiter

    limiter = SlidingWindowRateLimiter()

    if limiter.try_acquire("podcastindex"):
        # Make your API request
        pass
    else:
        wait = limiter.retry_after("podcastindex")
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from utils.get_logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProviderLimit:
    """Capacity per window, window length and the fallback retry hint (seconds)."""

    limit: int
    window: float
    retry_after: int


DEFAULT_LIMIT = ProviderLimit(limit=10, window=60, retry_after=60)

DEFAULT_LIMITS: dict[str, ProviderLimit] = {
    "podcastindex": ProviderLimit(limit=10, window=60, retry_after=60),
    "taddy": ProviderLimit(limit=20, window=60, retry_after=30),
    "youtube": ProviderLimit(limit=10, window=60, retry_after=60),
    "rss": ProviderLimit(limit=50, window=60, retry_after=10),
}


class SlidingWindowRateLimiter:
    """
    Sliding window limiter keyed by provider id.

    Windows and their locks are created lazily. Unknown providers get
    DEFAULT_LIMIT. The clock is injectable so tests can move time forward
    without sleeping.
    """

    def __init__(
        self,
        limits: Mapping[str, ProviderLimit] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._limits = dict(DEFAULT_LIMITS if limits is None else limits)
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._locks: dict[str, threading.Lock] = {}
        # Guards creation of per-provider windows and locks
        self._lock = threading.Lock()

    @staticmethod
    def _key(provider: object) -> str:
        return str(getattr(provider, "value", provider))

    def limit_for(self, provider: object) -> ProviderLimit:
        return self._limits.get(self._key(provider), DEFAULT_LIMIT)

    def _state(self, key: str) -> tuple[deque[float], threading.Lock]:
        # Double-checked locking pattern for thread safety
        if key not in self._locks:
            with self._lock:
                if key not in self._locks:
                    self._windows[key] = deque()
                    self._locks[key] = threading.Lock()
                    limit = self._limits.get(key, DEFAULT_LIMIT)
                    logger.debug(
                        f"Created rate window for {key}: "
                        f"{limit.limit} requests per {limit.window}s"
                    )
        return self._windows[key], self._locks[key]

    def _prune(self, key: str, window: deque[float], now: float) -> None:
        cutoff = now - self._limits.get(key, DEFAULT_LIMIT).window
        while window and window[0] <= cutoff:
            window.popleft()

    def admit(self, provider: object) -> bool:
        """True if a call to provider may proceed now. Does not record it."""
        key = self._key(provider)
        window, lock = self._state(key)
        with lock:
            self._prune(key, window, self._clock())
            return len(window) < self.limit_for(key).limit

    def record(self, provider: object) -> None:
        """Register that a call to provider was made."""
        key = self._key(provider)
        window, lock = self._state(key)
        with lock:
            now = self._clock()
            self._prune(key, window, now)
            window.append(now)

    def try_acquire(self, provider: object) -> bool:
        """Admit and record in one locked step so concurrent callers cannot overshoot."""
        key = self._key(provider)
        window, lock = self._state(key)
        with lock:
            now = self._clock()
            self._prune(key, window, now)
            limit = self.limit_for(key)
            if len(window) >= limit.limit:
                logger.warning(
                    f"Rate limit reached for {key}: {len(window)}/{limit.limit} in {limit.window}s"
                )
                return False
            window.append(now)
            return True

    def retry_after(self, provider: object) -> int:
        """Seconds until the oldest in-window call expires (0 when the window is empty)."""
        key = self._key(provider)
        window, lock = self._state(key)
        limit = self.limit_for(key)
        with lock:
            now = self._clock()
            self._prune(key, window, now)
            if not window:
                return 0
            wait = math.ceil(window[0] + limit.window - now)
        return wait if wait > 0 else limit.retry_after

    def remaining(self, provider: object) -> int:
        key = self._key(provider)
        window, lock = self._state(key)
        with lock:
            self._prune(key, window, self._clock())
            return max(0, self.limit_for(key).limit - len(window))

    def reset(self, provider: object | None = None) -> None:
        """Forget recorded calls for one provider, or for all of them."""
        with self._lock:
            keys = list(self._windows) if provider is None else [self._key(provider)]
        for key in keys:
            window, lock = self._state(key)
            with lock:
                window.clear()
        logger.info(f"Rate limiter reset for {', '.join(keys) or 'no providers'}")
