from __future__ import annotations

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, MEMBER_EMAIL, MEMBER_PASSWORD, login
from worksuite.config import settings
from worksuite.errors import RateLimitError
from worksuite.rate_limit import (
  MemoryCounterStore,
  NullCounterStore,
  RateLimiter,
  RateLimitPolicy,
  RedisCounterStore,
)


class _Clock:
  def __init__(self, now: float) -> None:
    self.now = now

  def __call__(self) -> float:
    return self.now


class _UnreachableRedis:
  def register_script(self, script: str):
    async def _call(**_kwargs):
      raise RedisConnectionError("connection refused")

    return _call


@pytest.mark.anyio
async def test_sliding_window_allows_n_then_rejects_until_window_passes() -> None:
  clock = _Clock(1_000.0)
  rl = RateLimiter(MemoryCounterStore(), clock=clock)

  remaining = []
  for _ in range(3):
    r = await rl.limit("k", 3, 60)
    assert r.allowed
    remaining.append(r.remaining)
    clock.now += 1
  assert remaining == [2, 1, 0]

  blocked = await rl.limit("k", 3, 60)
  assert not blocked.allowed
  assert blocked.remaining == 0
  assert blocked.reset_at == 1_060.0

  # first hit slides out of the window
  clock.now = 1_060.5
  again = await rl.limit("k", 3, 60)
  assert again.allowed


@pytest.mark.anyio
async def test_counters_are_per_identifier() -> None:
  rl = RateLimiter(MemoryCounterStore(), clock=_Clock(0.0))
  assert (await rl.limit("a", 1, 60)).allowed
  assert not (await rl.limit("a", 1, 60)).allowed
  assert (await rl.limit("b", 1, 60)).allowed
  await rl.reset_prefix("a")
  assert (await rl.limit("a", 1, 60)).allowed


@pytest.mark.anyio
async def test_enforce_raises_with_reset_hint() -> None:
  clock = _Clock(5_000.0)
  rl = RateLimiter(MemoryCounterStore(), clock=clock)
  policy = RateLimitPolicy("login", 1, 900)
  await rl.enforce("10.0.0.1", policy)
  with pytest.raises(RateLimitError) as exc:
    await rl.enforce("10.0.0.1", policy)
  assert exc.value.retry_after == 900
  assert exc.value.body()["detail"]["code"] == "rate_limited"
  assert exc.value.headers["Retry-After"] == "900"


@pytest.mark.anyio
async def test_null_store_never_limits() -> None:
  rl = RateLimiter(NullCounterStore())
  for _ in range(10):
    assert (await rl.limit("k", 1, 60)).allowed


@pytest.mark.anyio
async def test_redis_failure_falls_back_to_memory() -> None:
  store = RedisCounterStore(_UnreachableRedis())  # type: ignore[arg-type]
  rl = RateLimiter(store, clock=_Clock(0.0))
  assert (await rl.limit("k", 1, 60)).allowed
  assert not (await rl.limit("k", 1, 60)).allowed


@pytest.mark.anyio
async def test_login_rate_limited(client: AsyncClient) -> None:
  orig = settings.rate_limit_login_max
  settings.rate_limit_login_max = 2
  try:
    for _ in range(2):
      r = await client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "Wrong-pass1"})
      assert r.status_code == 401, r.text
      assert r.json()["detail"] == "Invalid email or password"
    r = await client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert r.status_code == 429, r.text
    detail = r.json()["detail"]
    assert detail["code"] == "rate_limited"
    assert detail["resetAt"]
    assert int(r.headers["Retry-After"]) >= 1
  finally:
    settings.rate_limit_login_max = orig


@pytest.mark.anyio
async def test_unknown_email_and_wrong_password_look_the_same(client: AsyncClient) -> None:
  a = await client.post("/api/auth/login", json={"email": "nobody@worksuite.local", "password": "Whatever1"})
  b = await client.post("/api/auth/login", json={"email": MEMBER_EMAIL, "password": "Whatever1"})
  assert a.status_code == b.status_code == 401
  assert a.json() == b.json()


@pytest.mark.anyio
async def test_api_requests_rate_limited_per_user(client: AsyncClient) -> None:
  orig = settings.rate_limit_api_max
  settings.rate_limit_api_max = 3
  try:
    await login(client, MEMBER_EMAIL, MEMBER_PASSWORD)
    for _ in range(3):
      r = await client.get("/api/auth/me")
      assert r.status_code == 200, r.text
    r = await client.get("/api/auth/me")
    assert r.status_code == 429, r.text
    assert r.headers["X-RateLimit-Limit"] == "3"
  finally:
    settings.rate_limit_api_max = orig


@pytest.mark.anyio
async def test_forgot_password_rate_limited(client: AsyncClient) -> None:
  for _ in range(settings.rate_limit_password_reset_max):
    r = await client.post("/api/auth/forgot-password", json={"email": MEMBER_EMAIL})
    assert r.status_code == 200, r.text
  r = await client.post("/api/auth/forgot-password", json={"email": MEMBER_EMAIL})
  assert r.status_code == 429, r.text
