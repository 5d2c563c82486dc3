"""Fixed-window rate limiting behind a swappable store.

Best-effort abuse mitigation, not a quota system: the in-memory store is lost
on restart and is per process; concurrent hits may be counted imprecisely.
Deployments with several workers can switch to the Redis store.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import redis

from tenantgate_api.errors import RateLimitedError
from tenantgate_api.settings import get_settings
from tenantgate_api.utils.metrics import rate_limited

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    ok: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0


class RateLimitStore(ABC):
    """Counts hits per key within a window."""

    @abstractmethod
    def hit(self, key: str, window_seconds: float, now: float) -> tuple[int, float]:
        """Record a hit; return (count in current window, window reset time)."""


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local buckets."""

    CLEANUP_THRESHOLD = 2000

    def __init__(self):
        self._buckets: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_seconds: float, now: float) -> tuple[int, float]:
        with self._lock:
            self._cleanup(now)
            bucket = self._buckets.get(key)
            if bucket is None or bucket[1] <= now:
                bucket = [0, now + window_seconds]
                self._buckets[key] = bucket
            bucket[0] += 1
            return int(bucket[0]), bucket[1]

    def _cleanup(self, now: float) -> None:
        if len(self._buckets) < self.CLEANUP_THRESHOLD:
            return
        for key in [k for k, (_, reset_at) in self._buckets.items() if reset_at <= now]:
            del self._buckets[key]

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


class RedisRateLimitStore(RateLimitStore):
    """Buckets shared across processes through Redis."""

    def __init__(self, client: "redis.Redis", namespace: str = "rate_limit"):
        self.client = client
        self.namespace = namespace

    def hit(self, key: str, window_seconds: float, now: float) -> tuple[int, float]:
        redis_key = f"{self.namespace}:{key}"
        window_ms = max(1, int(window_seconds * 1000))

        pipe = self.client.pipeline()
        pipe.incr(redis_key)
        pipe.pexpire(redis_key, window_ms, nx=True)
        pipe.pttl(redis_key)
        count, _, ttl_ms = pipe.execute()

        if ttl_ms is None or ttl_ms < 0:
            # Key lost its TTL (e.g. created by an older client); restart the window
            self.client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms
        return int(count), now + ttl_ms / 1000.0


class RateLimiter:
    """Check keys such as ``mobile:<apiKeyId>`` or ``login:<ip>`` against a limit."""

    def __init__(self, store: RateLimitStore):
        self.store = store

    def check(
        self,
        key: str,
        limit: int,
        window_seconds: float = 60,
        now: Optional[float] = None,
    ) -> RateLimitResult:
        now = time.time() if now is None else now
        count, reset_at = self.store.hit(key, window_seconds, now)
        if count > limit:
            retry_after = max(1, math.ceil(reset_at - now))
            return RateLimitResult(False, limit, 0, reset_at, retry_after)
        return RateLimitResult(True, limit, max(0, limit - count), reset_at)

    def enforce(self, key: str, limit: int, window_seconds: float = 60) -> RateLimitResult:
        """Like check, but raise RateLimitedError when over the limit."""
        result = self.check(key, limit, window_seconds)
        if not result.ok:
            rate_limited.labels(scope=key.split(":", 1)[0]).inc()
            raise RateLimitedError(result.retry_after)
        return result


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter using the configured backend."""
    settings = get_settings()
    backend = settings.rate_limit_backend.lower()
    if backend == "redis":
        logger.info("Using Redis rate limit store")
        return RateLimiter(RedisRateLimitStore(redis.from_url(settings.redis_url)))
    if backend != "memory":
        logger.warning(f"Unknown RATE_LIMIT_BACKEND {backend!r}, using in-memory store")
    return RateLimiter(InMemoryRateLimitStore())


def client_ip(request) -> str:
    """Client address, preferring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    if request.client:
        return request.client.host
    return "unknown"


def rate_limiter_for(app) -> RateLimiter:
    """Limiter of an app (injected in tests), else the process-wide one."""
    limiter = getattr(app.state, "rate_limiter", None)
    return limiter or get_rate_limiter()
