"""
Fixed-window rate limiting for credential issuance.

Each identity gets one counter per window, stored under a key that embeds
the window index:

    {prefix}:{identity}:{window_index}

A new window means a new key, so the reset at the boundary is atomic and
never partial. Old keys simply expire.

Windows do not slide. A burst straddling a boundary can pass up to twice
the limit; that approximation is accepted in exchange for one atomic
increment per request.
"""

import logging
import math
import time
from typing import Callable, Protocol

from .models import RateLimitDecision

logger = logging.getLogger(__name__)


class RateLimitError(Exception):
    """Base class for rate limiting failures."""
    pass


class RateLimitExceeded(RateLimitError):
    """Raised by callers that prefer exceptions over decisions."""

    def __init__(self, identity: str, retry_after: float):
        self.identity = identity
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after:.1f} seconds.")


class RateLimitStoreError(RateLimitError):
    """Raised when the counter store cannot be reached."""
    pass


class CounterStore(Protocol):
    """
    Atomic counters with expiry.

    Any key-value store with atomic increment and TTL semantics fits:
    Redis in production, an in-memory dict for local development.
    """

    def increment(self, key: str, ttl_seconds: int) -> int:
        """Atomically add one to `key`, set its expiry, return the new value."""
        ...

    def get(self, key: str) -> int:
        """Current value of `key`, 0 if missing or expired."""
        ...

    def delete(self, key: str) -> None:
        ...

    def ping(self) -> bool:
        ...


class FixedWindowRateLimiter:
    """
    Gates how often an identity may request a new upload credential.

    The limiter itself holds no mutable state; all counting happens in the
    store, one atomic increment per call.
    """

    def __init__(
        self,
        store: CounterStore,
        max_requests: int,
        window_seconds: float,
        prefix: str = "ratelimit",
        fail_open: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._store = store
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._prefix = prefix
        self._fail_open = fail_open
        self._clock = clock

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _window(self, now: float) -> tuple[int, float]:
        """Index of the window containing `now` and seconds left in it."""
        index = int(now // self._window_seconds)
        window_end = (index + 1) * self._window_seconds
        return index, window_end - now

    def _key(self, identity: str, index: int) -> str:
        return f"{self._prefix}:{identity}:{index}"

    def allow(self, identity: str) -> RateLimitDecision:
        """
        Count one request for `identity` and decide whether it may proceed.

        The counter increments on every call, including rejected ones. A call
        is rejected when the pre-increment count already reached the limit.
        """
        now = self._clock()
        index, seconds_left = self._window(now)
        key = self._key(identity, index)

        try:
            count = self._store.increment(key, max(1, math.ceil(seconds_left)))
        except RateLimitStoreError as e:
            if not self._fail_open:
                raise
            # availability over strict limiting, when configured
            logger.error(
                "Rate limit store unavailable, permitting request",
                extra={"identity": identity, "error": str(e)}
            )
            return RateLimitDecision(
                permitted=True,
                limit=self._max_requests,
                remaining=self._max_requests,
            )

        if count > self._max_requests:
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "identity": identity,
                    "count": count,
                    "limit": self._max_requests,
                    "retry_after": seconds_left,
                }
            )
            return RateLimitDecision(
                permitted=False,
                limit=self._max_requests,
                remaining=0,
                retry_after=seconds_left,
            )

        return RateLimitDecision(
            permitted=True,
            limit=self._max_requests,
            remaining=self._max_requests - count,
        )

    def check(self, identity: str) -> RateLimitDecision:
        """Like allow(), but raises RateLimitExceeded when denied."""
        decision = self.allow(identity)
        if not decision.permitted:
            raise RateLimitExceeded(identity, decision.retry_after or 0.0)
        return decision

    def peek(self, identity: str) -> int:
        """Requests counted for `identity` in the current window, without counting one."""
        index, _ = self._window(self._clock())
        return self._store.get(self._key(identity, index))

    def reset(self, identity: str) -> None:
        """Clear the current window for `identity` (admin function)."""
        index, _ = self._window(self._clock())
        self._store.delete(self._key(identity, index))

        logger.info("Rate limit reset", extra={"identity": identity})
