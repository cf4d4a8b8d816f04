"""
Per-client sliding-window rate limiting.

Counts live in Redis when ``REDIS_URL`` is configured, otherwise in process
memory (each instance then counts on its own). Any backend failure lets the
request through.
"""

import asyncio
import logging
import math
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Mapping, Optional

from redis.asyncio import Redis
from redis.exceptions import NoScriptError, RedisError

from .config import RateLimitRule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int   # seconds until the oldest counted request leaves the window
    degraded: bool = False

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_seconds),
        }


def _reset_after(oldest: float, window: float, now: float) -> int:
    return max(1, math.ceil(oldest + window - now))


# --- BACKENDS ---

class MemorySlidingWindow:
    """Timestamps per key in a deque, pruned on each hit. Keys whose window has passed are swept."""

    def __init__(self, clock: Callable[[], float] = time.time, sweep_every: float = 60.0):
        self._clock = clock
        self._sweep_every = sweep_every
        self._hits: Dict[str, Deque[float]] = {}
        self._windows: Dict[str, int] = {}
        self._last_sweep = clock()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        expired = [
            key for key, hits in self._hits.items()
            if not hits or hits[-1] <= now - self._windows[key]
        ]
        for key in expired:
            del self._hits[key]
            del self._windows[key]
        self._last_sweep = now

    async def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self._sweep_every:
                self._sweep(now)

            hits = self._hits.get(key) or deque()
            while hits and hits[0] <= now - rule.window_seconds:
                hits.popleft()

            allowed = len(hits) < rule.limit
            if allowed:
                hits.append(now)
            if hits:
                self._hits[key] = hits
                self._windows[key] = rule.window_seconds
            else:
                self._hits.pop(key, None)
                self._windows.pop(key, None)

            oldest = hits[0] if hits else now
            return RateLimitResult(
                allowed=allowed,
                limit=rule.limit,
                remaining=max(0, rule.limit - len(hits)),
                reset_seconds=_reset_after(oldest, rule.window_seconds, now),
            )

    async def close(self) -> None:
        self._hits.clear()
        self._windows.clear()


# Prune, count, conditionally add. Times are integer milliseconds.
SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, member)
    count = count + 1
    allowed = 1
end
redis.call('PEXPIRE', key, window)

local oldest = now
local first = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
if first[2] then
    oldest = tonumber(first[2])
end
return {allowed, count, oldest}
"""


class RedisSlidingWindow:
    """Sorted set per key, updated atomically by a Lua script"""

    def __init__(self, redis: Redis, clock: Callable[[], float] = time.time, prefix: str = "ratelimit"):
        self._redis = redis
        self._clock = clock
        self._prefix = prefix
        self._script_sha: Optional[str] = None

    @classmethod
    def from_url(cls, url: str) -> "RedisSlidingWindow":
        return cls(Redis.from_url(url, socket_timeout=2.0, socket_connect_timeout=2.0))

    async def _evalsha_with_reload(self, *args):
        if not self._script_sha:
            self._script_sha = await self._redis.script_load(SLIDING_WINDOW_LUA)
        try:
            return await self._redis.evalsha(self._script_sha, 1, *args)
        except NoScriptError:
            logger.warning("Rate limit script missing from Redis, reloading")
            self._script_sha = await self._redis.script_load(SLIDING_WINDOW_LUA)
            return await self._redis.evalsha(self._script_sha, 1, *args)

    async def hit(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        now_ms = int(self._clock() * 1000)
        window_ms = rule.window_seconds * 1000
        allowed, count, oldest_ms = await self._evalsha_with_reload(
            f"{self._prefix}:{key}",
            now_ms,
            window_ms,
            rule.limit,
            f"{now_ms}-{uuid.uuid4().hex[:8]}",
        )
        return RateLimitResult(
            allowed=bool(int(allowed)),
            limit=rule.limit,
            remaining=max(0, rule.limit - int(count)),
            reset_seconds=_reset_after(int(oldest_ms) / 1000, rule.window_seconds, now_ms / 1000),
        )

    async def close(self) -> None:
        await self._redis.aclose()


# --- LIMITER ---

class RateLimiter:
    def __init__(self, backend, rules: Mapping[str, RateLimitRule]):
        self.backend = backend
        self.rules = dict(rules)

    async def check(self, endpoint: str, identifier: str) -> RateLimitResult:
        rule = self.rules[endpoint]
        try:
            result = await self.backend.hit(f"{endpoint}:{identifier}", rule)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            # Fail open
            logger.warning(f"⚠️ Rate limit backend unavailable for {endpoint}, allowing request: {e}")
            return RateLimitResult(
                allowed=True,
                limit=rule.limit,
                remaining=rule.limit,
                reset_seconds=rule.window_seconds,
                degraded=True,
            )

        if not result.allowed:
            logger.warning(
                f"🚫 Rate limit hit: {endpoint} for {identifier} "
                f"({rule.limit}/{rule.window_seconds}s, reset in {result.reset_seconds}s)"
            )
        return result

    async def close(self) -> None:
        await self.backend.close()


def build_rate_limiter(redis_url: str, rules: Mapping[str, RateLimitRule]) -> RateLimiter:
    if redis_url:
        logger.info("🧮 Rate limiting backed by Redis")
        return RateLimiter(RedisSlidingWindow.from_url(redis_url), rules)
    logger.info("🧮 Rate limiting in process memory (per instance)")
    return RateLimiter(MemorySlidingWindow(), rules)


def client_identifier(headers: Mapping[str, str]) -> str:
    """First x-forwarded-for hop, then x-real-ip, else a shared "unknown" bucket"""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    return real_ip or "unknown"
