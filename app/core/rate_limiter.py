import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from bisect import bisect_right
from typing import Callable, NamedTuple
from uuid import uuid4

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

# Trim, count and record in one round trip so two workers cannot both take the last slot.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
if redis.call('ZCARD', key) >= limit then
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    if oldest[2] then
        return {0, tonumber(oldest[2]) + window_ms - now_ms}
    end
    return {0, window_ms}
end
redis.call('ZADD', key, now_ms, ARGV[4])
redis.call('PEXPIRE', key, window_ms + 5000)
return {1, 0}
"""


class Decision(NamedTuple):
    allowed: bool
    retry_after: int


def _retry_after(wait_seconds: float) -> int:
    return max(1, math.ceil(wait_seconds))


class RateLimiter(ABC):
    @abstractmethod
    def allow(self, key: str, limit: int, window_seconds: int) -> Decision:
        raise NotImplementedError

    @abstractmethod
    def reset(self) -> None:
        raise NotImplementedError


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._stamps: dict[str, list[float]] = {}
        self._guard = threading.Lock()

    def allow(self, key: str, limit: int, window_seconds: int) -> Decision:
        now = self._clock()
        with self._guard:
            stamps = self._stamps.setdefault(key, [])
            expired = bisect_right(stamps, now - window_seconds)
            if expired:
                del stamps[:expired]

            if len(stamps) >= limit:
                return Decision(False, _retry_after(stamps[0] + window_seconds - now))

            stamps.append(now)
            return Decision(True, 0)

    def reset(self) -> None:
        with self._guard:
            self._stamps = {}


class RedisRateLimiter(RateLimiter):
    def __init__(self, redis_url: str, namespace: str = "marketplace:rl") -> None:
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=0.2,
            socket_timeout=0.2,
        )
        self._namespace = namespace
        self._window_script = self._client.register_script(_SLIDING_WINDOW_LUA)

    def allow(self, key: str, limit: int, window_seconds: int) -> Decision:
        now_ms = time.time_ns() // 1_000_000
        allowed, wait_ms = self._window_script(
            keys=[f"{self._namespace}:{key}"],
            args=[now_ms, window_seconds * 1000, limit, f"{now_ms}-{uuid4().hex}"],
        )
        if allowed:
            return Decision(True, 0)
        return Decision(False, _retry_after(int(wait_ms) / 1000))

    def reset(self) -> None:
        stale = list(self._client.scan_iter(match=f"{self._namespace}:*", count=500))
        if stale:
            self._client.unlink(*stale)


class FallbackRateLimiter(RateLimiter):
    """Uses ``primary`` until it raises a redis error, then counts locally until it answers again."""

    def __init__(self, primary: RateLimiter, fallback: RateLimiter) -> None:
        self._primary = primary
        self._fallback = fallback
        self.degraded = False

    def allow(self, key: str, limit: int, window_seconds: int) -> Decision:
        try:
            decision = self._primary.allow(key, limit, window_seconds)
        except redis.RedisError as exc:
            if not self.degraded:
                logger.warning("rate_limiter_fallback key=%s error=%s", key, exc)
            self.degraded = True
            return self._fallback.allow(key, limit, window_seconds)

        if self.degraded:
            logger.info("rate_limiter_recovered key=%s", key)
            self.degraded = False
        return decision

    def reset(self) -> None:
        self._fallback.reset()
        try:
            self._primary.reset()
        except redis.RedisError as exc:
            logger.warning("rate_limiter_reset_failed error=%s", exc)


def _build_rate_limiter() -> RateLimiter:
    backend = settings.rate_limit_backend.strip().lower()
    if backend == "redis":
        return FallbackRateLimiter(
            primary=RedisRateLimiter(settings.rate_limit_redis_url),
            fallback=InMemoryRateLimiter(),
        )
    if backend != "memory":
        logger.warning("rate_limiter_unknown_backend backend=%s using=memory", backend)
    return InMemoryRateLimiter()


rate_limiter: RateLimiter = _build_rate_limiter()
