"""
Atomic counter stores for rate limiting.

Production uses Redis: INCR and EXPIRE run inside one MULTI/EXEC pipeline,
so two requests from the same identity can never lose an update.

Mock mode keeps counters in a dictionary guarded by a lock, enabling local
development and tests without a Redis server.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ...core.uploads.rate_limit import CounterStore, RateLimitStoreError

logger = logging.getLogger(__name__)


@dataclass
class RedisConfig:
    """Connection settings for the Redis counter store."""
    url: str = "redis://localhost:6379/0"
    socket_timeout: float = 2.0


class RedisCounterStore:
    """
    Redis-backed counters.

    Uses the synchronous redis client: the credential endpoint runs in
    FastAPI's threadpool, and redis-py's connection pool is thread-safe.
    """

    def __init__(self, config: RedisConfig) -> None:
        try:
            import redis
        except ImportError:
            raise ImportError(
                "redis is required for the Redis counter store. Install with: pip install redis"
            )

        self._config = config
        self._redis = redis.Redis.from_url(
            config.url,
            socket_timeout=config.socket_timeout,
            decode_responses=True,
        )
        self._errors = (redis.RedisError,)

        logger.info(
            "Initialized Redis counter store",
            extra={"url": config.url.split("@")[-1]}
        )

    def increment(self, key: str, ttl_seconds: int) -> int:
        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expire(key, ttl_seconds)
            count, _ = pipe.execute()
            return int(count)
        except self._errors as e:
            logger.error(
                "Failed to increment counter",
                extra={"key": key, "error": str(e)}
            )
            raise RateLimitStoreError(f"Counter increment failed: {e}") from e

    def get(self, key: str) -> int:
        try:
            value = self._redis.get(key)
        except self._errors as e:
            raise RateLimitStoreError(f"Counter read failed: {e}") from e
        return int(value) if value else 0

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except self._errors as e:
            raise RateLimitStoreError(f"Counter delete failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except self._errors as e:
            logger.warning("Redis ping failed", extra={"error": str(e)})
            return False


# ---------------------------------------------------------------------------
# Mock Store for Local Development
# ---------------------------------------------------------------------------

class MockCounterStore:
    """
    In-memory counters with expiry.

    The lock makes each increment a single read-modify-write, matching
    the atomicity Redis gives us. Expired entries are swept every
    SWEEP_INTERVAL increments, so idle identities do not accumulate.
    Not shared between processes, so only suitable for development,
    tests and single-worker deployments.
    """

    SWEEP_INTERVAL = 100

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        # {key: (count, expires_at)}
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._increments = 0
        logger.info("Initialized mock counter store (in-memory)")

    def _live(self, key: str, now: float) -> Optional[tuple[int, float]]:
        entry = self._counters.get(key)
        if entry is None:
            return None
        if entry[1] <= now:
            del self._counters[key]
            return None
        return entry

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._counters.items() if expires_at <= now]
        for key in expired:
            del self._counters[key]

    def increment(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            now = self._clock()
            self._increments += 1
            if self._increments % self.SWEEP_INTERVAL == 0:
                self._sweep(now)
            entry = self._live(key, now)
            count = (entry[0] if entry else 0) + 1
            self._counters[key] = (count, now + ttl_seconds)
            return count

    def get(self, key: str) -> int:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry[0] if entry else 0

    def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_counter_store(
    config: Optional[RedisConfig] = None,
    mock_mode: bool = False,
) -> CounterStore:
    """
    Create a counter store based on configuration.

    Args:
        config: Redis configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory store

    Returns:
        CounterStore implementation (Redis or Mock)
    """
    if mock_mode:
        return MockCounterStore()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return RedisCounterStore(config)
