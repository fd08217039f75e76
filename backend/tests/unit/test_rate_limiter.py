import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from backend.answer_proxy.config import Settings
from backend.answer_proxy.errors import RateLimitExceeded
from backend.answer_proxy.utils.rate_limiter import (
    FixedWindowRateLimiter,
    MemoryWindowStore,
    RateLimitDecision,
    RedisWindowStore,
    build_rate_limiter,
    token_fingerprint,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _limiter(clock=None, window=3600):
    return FixedWindowRateLimiter(MemoryWindowStore(clock=clock or FakeClock()), window_seconds=window)


def test_allows_up_to_limit_then_blocks():
    limiter = _limiter()

    decisions = [asyncio.run(limiter.hit("generate", "abc", 3)) for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]


def test_window_resets():
    clock = FakeClock()
    limiter = _limiter(clock, window=60)

    asyncio.run(limiter.hit("register", "1.2.3.4", 1))
    assert not asyncio.run(limiter.hit("register", "1.2.3.4", 1)).allowed

    clock.now += 61
    assert asyncio.run(limiter.hit("register", "1.2.3.4", 1)).allowed


def test_scopes_and_identities_are_independent():
    limiter = _limiter()

    asyncio.run(limiter.hit("register", "ip-a", 1))
    assert asyncio.run(limiter.hit("register", "ip-b", 1)).allowed
    assert asyncio.run(limiter.hit("generate", "ip-a", 1)).allowed


def test_reset_after_counts_down():
    clock = FakeClock()
    limiter = _limiter(clock, window=3600)

    first = asyncio.run(limiter.hit("generate", "k", 10))
    clock.now += 600
    second = asyncio.run(limiter.hit("generate", "k", 10))

    assert first.reset_after == 3600
    assert second.reset_after == 3000


def test_enforce_raises_with_headers():
    limiter = _limiter()
    asyncio.run(limiter.enforce("generate", "k", 1))

    with pytest.raises(RateLimitExceeded) as exc_info:
        asyncio.run(limiter.enforce("generate", "k", 1))

    headers = exc_info.value.headers
    assert exc_info.value.status_code == 429
    assert headers["Retry-After"] == "3600"
    assert headers["RateLimit-Remaining"] == "0"


def test_zero_limit_disables():
    limiter = _limiter()
    for _ in range(5):
        assert asyncio.run(limiter.enforce("ip", "k", 0)).allowed


def test_decision_headers():
    allowed = RateLimitDecision(allowed=True, limit=60, remaining=59, reset_after=3600)
    assert allowed.headers() == {
        "RateLimit-Limit": "60",
        "RateLimit-Remaining": "59",
        "RateLimit-Reset": "3600",
    }
    blocked = RateLimitDecision(allowed=False, limit=60, remaining=0, reset_after=12)
    assert blocked.headers()["Retry-After"] == "12"


def test_memory_store_evicts_expired_windows():
    clock = FakeClock()
    store = MemoryWindowStore(clock=clock)
    for i in range(10):
        asyncio.run(store.incr(f"k{i}", 60))

    clock.now += 120
    asyncio.run(store.incr("fresh", 60))

    assert list(store._windows) == ["fresh"]


def _redis_client(count, ttl):
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[count, ttl])
    client = MagicMock()
    client.pipeline.return_value = pipe
    client.expire = AsyncMock()
    return client, pipe


def test_redis_store_sets_expiry_on_first_hit():
    client, pipe = _redis_client(count=1, ttl=-1)
    store = RedisWindowStore(client)

    count, seconds_left = asyncio.run(store.incr("ratelimit:generate:k", 3600))

    assert (count, seconds_left) == (1, 3600)
    pipe.incr.assert_called_once_with("ratelimit:generate:k")
    client.expire.assert_awaited_once_with("ratelimit:generate:k", 3600)


def test_redis_store_keeps_existing_window():
    client, _ = _redis_client(count=7, ttl=1200)
    store = RedisWindowStore(client)

    assert asyncio.run(store.incr("k", 3600)) == (7, 1200)
    client.expire.assert_not_awaited()


def test_token_fingerprint_hides_token():
    token = "payload.signature"
    fingerprint = token_fingerprint(token)

    assert token not in fingerprint
    assert len(fingerprint) == 32
    assert fingerprint == token_fingerprint(token)


def test_build_memory_limiter():
    limiter = build_rate_limiter(Settings(_env_file=None, rate_limit_window_seconds=60))
    assert isinstance(limiter.store, MemoryWindowStore)
    assert limiter.window_seconds == 60
