import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError

from creative_engine.config import ENDPOINT_LIMITS, RateLimitRule
from creative_engine.errors import RateLimitExceeded
from creative_engine.rate_limit import (
    MemorySlidingWindow,
    RateLimiter,
    RateLimitResult,
    RedisSlidingWindow,
    client_identifier,
)


class BrokenBackend:
    async def hit(self, key, rule):
        raise RedisConnectionError("redis is down")

    async def close(self):
        pass


class TestSlidingWindow:
    @pytest.mark.asyncio
    async def test_limit_plus_one_is_rejected(self, fake_clock):
        limiter = RateLimiter(MemorySlidingWindow(clock=fake_clock), {"analyze": RateLimitRule(limit=3)})

        results = [await limiter.check("analyze", "1.2.3.4") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert results[-1].reset_seconds == 3600

    @pytest.mark.asyncio
    async def test_recovers_after_window(self, fake_clock):
        limiter = RateLimiter(MemorySlidingWindow(clock=fake_clock), {"analyze": RateLimitRule(limit=1)})

        assert (await limiter.check("analyze", "ip")).allowed
        fake_clock.now = 1800
        rejected = await limiter.check("analyze", "ip")
        assert not rejected.allowed
        assert rejected.reset_seconds == 1800

        fake_clock.now = 3600
        assert (await limiter.check("analyze", "ip")).allowed

    @pytest.mark.asyncio
    async def test_counts_are_per_endpoint_and_client(self, fake_clock):
        limiter = RateLimiter(MemorySlidingWindow(clock=fake_clock), {
            "analyze": RateLimitRule(limit=1),
            "scrapeUrl": RateLimitRule(limit=1),
        })

        assert (await limiter.check("analyze", "a")).allowed
        assert (await limiter.check("analyze", "b")).allowed
        assert (await limiter.check("scrapeUrl", "a")).allowed
        assert not (await limiter.check("analyze", "a")).allowed

    @pytest.mark.asyncio
    async def test_expired_clients_are_forgotten(self, fake_clock):
        backend = MemorySlidingWindow(clock=fake_clock)
        limiter = RateLimiter(backend, {"analyze": RateLimitRule(limit=5)})

        for i in range(1000):
            await limiter.check("analyze", f"10.0.{i // 256}.{i % 256}")
        assert len(backend) == 1000

        fake_clock.now = 10 * 3600
        await limiter.check("analyze", "fresh")

        assert len(backend) == 1

    @pytest.mark.asyncio
    async def test_backend_failure_fails_open(self):
        limiter = RateLimiter(BrokenBackend(), ENDPOINT_LIMITS)

        result = await limiter.check("analyze", "ip")

        assert result.allowed
        assert result.degraded
        assert result.limit == 10


def test_default_limits():
    assert {name: rule.limit for name, rule in ENDPOINT_LIMITS.items()} == {
        "analyze": 10,
        "generateStaticAd": 15,
        "generateProductVideo": 20,
        "generateViralScript": 20,
        "enhancePrompt": 30,
        "scrapeUrl": 50,
    }


def test_rejection_payload_and_headers():
    error = RateLimitExceeded(RateLimitResult(allowed=False, limit=10, remaining=0, reset_seconds=120))

    assert error.status_code == 429
    assert error.to_payload() == {
        "error": "Rate limit exceeded",
        "details": "Rate limit exceeded. Please try again after 120 seconds.",
        "limit": 10,
        "remaining": 0,
        "reset": 120,
    }
    assert error.headers() == {
        "X-RateLimit-Limit": "10",
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": "120",
        "Retry-After": "120",
    }


class TestClientIdentifier:
    def test_first_forwarded_hop(self):
        assert client_identifier({"x-forwarded-for": "203.0.113.7, 10.0.0.1"}) == "203.0.113.7"

    def test_real_ip(self):
        assert client_identifier({"x-real-ip": "198.51.100.2"}) == "198.51.100.2"

    def test_unknown(self):
        assert client_identifier({}) == "unknown"


class FakeRedis:
    """Stands in for redis.asyncio.Redis: the first EVALSHA reports a flushed script cache"""

    def __init__(self, reply):
        self.reply = reply
        self.loads = 0
        self.evals = []

    async def script_load(self, source):
        self.loads += 1
        return f"sha-{self.loads}"

    async def evalsha(self, sha, num_keys, *args):
        self.evals.append((sha, num_keys, args))
        if len(self.evals) == 1:
            raise NoScriptError("NOSCRIPT No matching script")
        return self.reply


class TestRedisSlidingWindow:
    @pytest.mark.asyncio
    async def test_reloads_script_and_maps_reply(self, fake_clock):
        fake_clock.now = 1000.0
        redis = FakeRedis(reply=[0, 5, 400_000])
        backend = RedisSlidingWindow(redis, clock=fake_clock)

        result = await backend.hit("analyze:ip", RateLimitRule(limit=5))

        assert redis.loads == 2
        sha, num_keys, args = redis.evals[-1]
        assert sha == "sha-2"
        assert num_keys == 1
        assert args[:4] == ("ratelimit:analyze:ip", 1_000_000, 3_600_000, 5)
        assert not result.allowed
        assert result.remaining == 0
        # oldest hit at t=400s leaves the window at t=4000s
        assert result.reset_seconds == 3000
