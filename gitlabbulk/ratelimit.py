"""
gitlabbulk.ratelimit
~~~~~~~~~~~~~~~~~~~~

Token-bucket pacing for outbound GitLab API calls.

One bucket exists per credential key (GitLab URL plus token digest), so
every bulk operation that talks to the same instance with the same token
draws from the same budget.

:copyright: (C) 2024-2026 by gitlabbulk contributors.
:license: AGPL 3, see LICENSE for more details.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """Thread-safe token bucket with reservation semantics.

    A call to :meth:`reserve` always takes a token, letting the balance go
    negative, and returns how long the caller has to wait for that token
    to have been earned. Waiting happens outside the lock, so concurrent
    callers are served in reservation order and the long-run rate never
    exceeds *rate*.

    :param rate: Tokens added per second. ``<= 0`` disables pacing.
    :param capacity: Maximum stored tokens (burst size).
    """

    def __init__(
        self,
        rate: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rate = float(rate)
        self.capacity = max(1, int(capacity))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = float(self.capacity)
        self._updated = clock()

    def reserve(self) -> float:
        """Take one token and return the seconds to wait before using it."""
        if self.rate <= 0:
            return 0.0
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
            self._updated = now
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    def acquire(self) -> float:
        """Block until a token is available.

        :returns: The number of seconds spent waiting.
        """
        wait = self.reserve()
        if wait > 0:
            self._sleep(wait)
        return wait


class RateLimiter:
    """Per-credential registry of :class:`TokenBucket` objects.

    ``acquire`` never fails and never retries; it only delays.

    :param rate: Calls per second allowed per credential key.
    :param burst: Bucket capacity.
    """

    def __init__(
        self,
        rate: float = 5.0,
        burst: int = 5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def bucket(self, credential_key: str) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(credential_key)
            if bucket is None:
                bucket = TokenBucket(self.rate, self.burst,
                                     clock=self._clock, sleep=self._sleep)
                self._buckets[credential_key] = bucket
            return bucket

    def acquire(self, credential_key: str = "default") -> float:
        """Block until a call against *credential_key* is allowed."""
        waited = self.bucket(credential_key).acquire()
        if waited:
            logger.debug("rate limiter delayed call for %.3fs", waited)
        return waited
