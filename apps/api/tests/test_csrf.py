from __future__ import annotations

import pytest

from worksuite.csrf import generate_csrf_token, is_csrf_exempt, requires_csrf_validation, tokens_match


@pytest.mark.anyio
async def test_generated_tokens_are_random_hex() -> None:
  a = generate_csrf_token()
  b = generate_csrf_token()
  assert len(a) == 64 and int(a, 16) >= 0
  assert a != b


@pytest.mark.anyio
async def test_tokens_match_is_symmetric() -> None:
  t = generate_csrf_token()
  assert tokens_match(t, t)
  other = generate_csrf_token()
  assert tokens_match(t, other) == tokens_match(other, t) is False


@pytest.mark.anyio
async def test_tokens_match_rejects_length_mismatch_and_missing() -> None:
  t = generate_csrf_token()
  assert not tokens_match(t, t[:-1])
  assert not tokens_match(t, t + "0")
  assert not tokens_match(t, None)
  assert not tokens_match(None, t)
  assert not tokens_match("", "")


@pytest.mark.anyio
async def test_only_mutating_methods_need_validation() -> None:
  for m in ("GET", "HEAD", "OPTIONS", "get"):
    assert not requires_csrf_validation(m)
  for m in ("POST", "PUT", "PATCH", "DELETE", "delete"):
    assert requires_csrf_validation(m)


@pytest.mark.anyio
async def test_exemptions_are_an_explicit_allow_list() -> None:
  assert is_csrf_exempt("/api/setup/create-admin")
  assert is_csrf_exempt("/api/auth/callback/google")
  assert is_csrf_exempt("/api/webhook/stripe")
  assert not is_csrf_exempt("/api/auth/2fa/setup")
  assert not is_csrf_exempt("/api/auth/sessions")
  assert not is_csrf_exempt("/api/uploads")
  assert is_csrf_exempt("/api/webhook")
  assert not is_csrf_exempt("/api/webhooks-admin")
  assert not is_csrf_exempt("/api/webhookfoo")
  assert not is_csrf_exempt("/api/setupx")
  assert not is_csrf_exempt("/api/auth/callbacks/google")
