from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from worksuite.config import settings
from worksuite.errors import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
  name: str
  max_requests: int
  window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
  allowed: bool
  limit: int
  remaining: int
  reset_at: float  # epoch seconds

  @property
  def reset_at_datetime(self) -> datetime:
    return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)

  def retry_after(self, now: float) -> int:
    return max(1, int(round(self.reset_at - now)))


class CounterStore(Protocol):
  async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> RateLimitResult: ...

  async def reset_prefix(self, prefix: str) -> None: ...


class MemoryCounterStore:
  """
  Sliding-window counters kept in process memory.

  Every process has its own counters, so limits multiply with the replica
  count. Use RedisCounterStore when the API runs more than one process.
  """

  sweep_every = 100

  def __init__(self) -> None:
    self._lock = Lock()
    self._hits: dict[str, list[float]] = {}
    self._windows: dict[str, int] = {}
    self._calls = 0

  async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> RateLimitResult:
    with self._lock:
      self._calls += 1
      if self._calls % self.sweep_every == 0:
        self._sweep(now)
      self._windows[key] = window_seconds
      stamps = [t for t in self._hits.get(key, []) if t > now - window_seconds]
      if len(stamps) >= limit:
        self._hits[key] = stamps
        return RateLimitResult(allowed=False, limit=limit, remaining=0, reset_at=min(stamps) + window_seconds)
      stamps.append(now)
      self._hits[key] = stamps
      return RateLimitResult(
        allowed=True,
        limit=limit,
        remaining=max(0, limit - len(stamps)),
        reset_at=stamps[0] + window_seconds,
      )

  def _sweep(self, now: float) -> None:
    for k in list(self._hits.keys()):
      window = self._windows.get(k, 0)
      if not any(t > now - window for t in self._hits[k]):
        del self._hits[k]
        self._windows.pop(k, None)

  async def reset_prefix(self, prefix: str) -> None:
    with self._lock:
      for k in list(self._hits.keys()):
        if k.startswith(prefix):
          del self._hits[k]
          self._windows.pop(k, None)


class NullCounterStore:
  async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> RateLimitResult:
    return RateLimitResult(allowed=True, limit=limit, remaining=limit, reset_at=now + window_seconds)

  async def reset_prefix(self, prefix: str) -> None:
    return None


# Prune, count, conditionally add: one round trip, atomic on the server.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
local allowed = 0
if count < limit then
  redis.call('ZADD', key, now, ARGV[4])
  count = count + 1
  allowed = 1
end
redis.call('PEXPIRE', key, math.ceil(window * 1000))
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local reset = now + window
if oldest[2] then
  reset = tonumber(oldest[2]) + window
end
return {allowed, count, tostring(reset)}
"""


class RedisCounterStore:
  """Sliding window in a Redis sorted set; falls back to memory if Redis is unreachable."""

  def __init__(self, client: aioredis.Redis, *, prefix: str = "rl:", fallback: MemoryCounterStore | None = None) -> None:
    self._redis = client
    self._prefix = prefix
    self._script = client.register_script(_SLIDING_WINDOW_LUA)
    self.fallback = fallback or MemoryCounterStore()

  @classmethod
  def from_url(cls, url: str) -> RedisCounterStore:
    return cls(aioredis.Redis.from_url(url, decode_responses=True))

  async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> RateLimitResult:
    member = f"{now:.6f}:{secrets.token_hex(4)}"
    try:
      allowed, count, reset = await self._script(keys=[self._prefix + key], args=[now, window_seconds, limit, member])
    except RedisError as exc:
      logger.warning("Redis rate limiter unavailable, using in-memory counters: %s", exc)
      return await self.fallback.hit(key, limit=limit, window_seconds=window_seconds, now=now)
    return RateLimitResult(
      allowed=bool(int(allowed)),
      limit=limit,
      remaining=max(0, limit - int(count)),
      reset_at=float(reset),
    )

  async def reset_prefix(self, prefix: str) -> None:
    await self.fallback.reset_prefix(prefix)
    try:
      async for k in self._redis.scan_iter(match=f"{self._prefix}{prefix}*"):
        await self._redis.delete(k)
    except RedisError as exc:
      logger.warning("Could not reset Redis rate limit keys: %s", exc)


def build_counter_store(redis_url: str | None) -> CounterStore:
  if redis_url and redis_url.strip():
    return RedisCounterStore.from_url(redis_url.strip())
  return MemoryCounterStore()


class RateLimiter:
  def __init__(self, store: CounterStore, *, clock: Callable[[], float] = time.time) -> None:
    self.store = store
    self.clock = clock

  async def limit(self, identifier: str, max_requests: int, window_seconds: int) -> RateLimitResult:
    return await self.store.hit(identifier, limit=int(max_requests), window_seconds=int(window_seconds), now=self.clock())

  async def check(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
    return await self.limit(f"{policy.name}:{identifier}", policy.max_requests, policy.window_seconds)

  async def enforce(self, identifier: str, policy: RateLimitPolicy) -> RateLimitResult:
    result = await self.check(identifier, policy)
    if not result.allowed:
      logger.warning("Rate limit exceeded", extra={"policy": policy.name, "identifier": identifier})
      raise RateLimitError(
        limit=result.limit,
        reset_at=result.reset_at_datetime,
        retry_after=result.retry_after(self.clock()),
      )
    return result

  async def reset_prefix(self, prefix: str) -> None:
    await self.store.reset_prefix(prefix)


def login_policy() -> RateLimitPolicy:
  return RateLimitPolicy("login", settings.rate_limit_login_max, settings.rate_limit_login_window_seconds)


def signup_policy() -> RateLimitPolicy:
  return RateLimitPolicy("signup", settings.rate_limit_signup_max, settings.rate_limit_signup_window_seconds)


def api_policy() -> RateLimitPolicy:
  return RateLimitPolicy("api", settings.rate_limit_api_max, settings.rate_limit_api_window_seconds)


def password_reset_policy() -> RateLimitPolicy:
  return RateLimitPolicy(
    "password-reset", settings.rate_limit_password_reset_max, settings.rate_limit_password_reset_window_seconds
  )


limiter = RateLimiter(build_counter_store(settings.redis_url))
