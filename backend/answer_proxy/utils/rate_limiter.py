from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Protocol, Tuple

import redis.asyncio as redis

from backend.answer_proxy.config import Settings
from backend.answer_proxy.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the window resets

    def headers(self) -> Dict[str, str]:
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_after),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after)
        return headers


class WindowStore(Protocol):
    async def incr(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """Increment the counter for ``key``; return (count, seconds_left)."""
        ...


class MemoryWindowStore:
    """Per-process fixed windows. Suitable for a single worker."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, float]] = {}

    async def incr(self, key: str, window_seconds: int) -> Tuple[int, int]:
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_seconds
                self._evict_expired(now)
            count += 1
            self._windows[key] = (count, reset_at)
        return count, max(1, int(reset_at - now + 0.999))

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]
        for k in expired:
            del self._windows[k]


class RedisWindowStore:
    """Shared fixed windows across workers."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisWindowStore":
        return cls(redis.Redis.from_url(redis_url, decode_responses=True))

    async def incr(self, key: str, window_seconds: int) -> Tuple[int, int]:
        pipe = self.client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = await pipe.execute()

        if ttl < 0:
            await self.client.expire(key, window_seconds)
            ttl = window_seconds

        return count, ttl if ttl > 0 else window_seconds


class FixedWindowRateLimiter:
    def __init__(self, store: WindowStore, window_seconds: int = 3600, prefix: str = "ratelimit"):
        self.store = store
        self.window_seconds = window_seconds
        self.prefix = prefix

    async def hit(self, scope: str, identity: str, limit: int) -> RateLimitDecision:
        count, reset_after = await self.store.incr(f"{self.prefix}:{scope}:{identity}", self.window_seconds)
        return RateLimitDecision(
            allowed=count <= limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset_after=reset_after,
        )

    async def enforce(self, scope: str, identity: str, limit: int) -> RateLimitDecision:
        """Count a hit; raise RateLimitExceeded when over ``limit``. ``limit <= 0`` disables."""
        if limit <= 0:
            return RateLimitDecision(allowed=True, limit=0, remaining=0, reset_after=0)
        decision = await self.hit(scope, identity, limit)
        if not decision.allowed:
            logger.info("Rate limit exceeded for scope %s", scope)
            raise RateLimitExceeded(headers=decision.headers())
        return decision


def token_fingerprint(token: str) -> str:
    """Keys never contain the raw token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]


def build_rate_limiter(settings: Settings) -> FixedWindowRateLimiter:
    if settings.rate_limit_backend == "redis":
        store: WindowStore = RedisWindowStore.from_url(settings.redis_url)
    else:
        store = MemoryWindowStore()
    logger.info("Rate limiter backend: %s", settings.rate_limit_backend)
    return FixedWindowRateLimiter(store, window_seconds=settings.rate_limit_window_seconds)
