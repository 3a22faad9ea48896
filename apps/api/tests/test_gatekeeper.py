from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, MEMBER_EMAIL, MEMBER_PASSWORD, csrf_headers, login
from worksuite.gatekeeper import is_public_path


@pytest.mark.anyio
async def test_public_paths_match_on_segment_boundaries() -> None:
  assert is_public_path("/api/auth/login")
  assert is_public_path("/api/auth/callback/github")
  assert is_public_path("/api/setup/status")
  assert is_public_path("/api/auth/session")
  assert not is_public_path("/api/auth/sessions")
  assert not is_public_path("/api/auth/loginx")
  assert not is_public_path("/api/auth/me")


@pytest.mark.anyio
async def test_public_endpoints_need_no_session(client: AsyncClient) -> None:
  assert (await client.get("/api/health")).status_code == 200
  res = await client.get("/api/setup/status")
  assert res.status_code == 200
  assert res.json() == {"needsSetup": False}


@pytest.mark.anyio
async def test_protected_paths_require_valid_token(client: AsyncClient) -> None:
  res = await client.get("/api/auth/me")
  assert res.status_code == 401
  assert res.json() == {"detail": "Not authenticated"}

  client.cookies.set("auth-token", "garbage")
  res = await client.get("/api/auth/me")
  assert res.status_code == 401
  assert res.json() == {"detail": "Invalid or expired token"}


@pytest.mark.anyio
async def test_authentication_is_checked_before_csrf(client: AsyncClient) -> None:
  res = await client.post("/api/auth/2fa/setup")
  assert res.status_code == 401, res.text


@pytest.mark.anyio
async def test_login_then_csrf_protects_mutations(client: AsyncClient) -> None:
  await login(client, MEMBER_EMAIL, MEMBER_PASSWORD)

  res = await client.get("/api/auth/me")
  assert res.status_code == 200, res.text
  assert res.json()["email"] == MEMBER_EMAIL

  res = await client.post("/api/auth/2fa/setup")
  assert res.status_code == 403, res.text
  assert res.json() == {"detail": "Forbidden"}

  res = await client.post("/api/auth/2fa/setup", headers={"x-csrf-token": "0" * 64})
  assert res.status_code == 403, res.text

  res = await client.post("/api/auth/2fa/setup", headers=csrf_headers(client))
  assert res.status_code == 200, res.text


@pytest.mark.anyio
async def test_csrf_failure_looks_like_authorization_failure(client: AsyncClient) -> None:
  await login(client, MEMBER_EMAIL, MEMBER_PASSWORD)
  forbidden = await client.get("/api/admin/audit-events")
  csrf = await client.delete("/api/auth/sessions")
  assert forbidden.status_code == csrf.status_code == 403
  assert forbidden.json() == csrf.json()


@pytest.mark.anyio
async def test_exempt_prefix_skips_csrf_but_not_authentication(client: AsyncClient) -> None:
  res = await client.post("/api/webhook/example")
  assert res.status_code == 401

  await login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
  res = await client.post("/api/webhook/example")
  # no such route, but the request got past the CSRF check
  assert res.status_code == 404, res.text

  res = await client.post("/api/webhooks-admin/example")
  assert res.status_code == 403, res.text


@pytest.mark.anyio
async def test_safe_request_issues_csrf_cookie(client: AsyncClient) -> None:
  res = await client.get("/api/health")
  assert "csrf-token=" in (res.headers.get("set-cookie") or "")
  token = client.cookies.get("csrf-token")
  assert token and len(token) == 64

  again = await client.get("/api/health")
  assert "csrf-token=" not in (again.headers.get("set-cookie") or "")

  res = await client.get("/api/auth/csrf")
  assert res.json() == {"csrfToken": token}


@pytest.mark.anyio
async def test_preflight_is_not_blocked(client: AsyncClient) -> None:
  res = await client.options(
    "/api/auth/me",
    headers={"origin": "http://localhost:3000", "access-control-request-method": "POST"},
  )
  assert res.status_code == 200, res.text


@pytest.mark.anyio
async def test_security_headers_present(client: AsyncClient) -> None:
  res = await client.get("/api/health")
  assert res.headers["x-content-type-options"] == "nosniff"
  assert res.headers["x-frame-options"] == "DENY"


@pytest.mark.anyio
async def test_request_validation_errors_are_400(client: AsyncClient) -> None:
  res = await client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})
  assert res.status_code == 400, res.text
