from __future__ import annotations

import hmac
import secrets

from starlette.requests import Request
from starlette.responses import Response

from worksuite.config import settings

CSRF_COOKIE_NAME = "csrf-token"
CSRF_HEADER_NAME = "x-csrf-token"

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Mutating routes that cannot carry a double-submit token.
CSRF_EXEMPT_PREFIXES = (
  "/api/setup",  # first-run setup happens before any cookie exists
  "/api/auth/callback",  # OAuth provider redirects
  "/api/webhook",  # verified by their own signatures
)


def generate_csrf_token() -> str:
  return secrets.token_hex(32)


def requires_csrf_validation(method: str) -> bool:
  return method.upper() not in SAFE_METHODS


def is_csrf_exempt(path: str) -> bool:
  # whole path segments only: /api/webhook does not cover /api/webhooks-admin
  return any(path == p or path.startswith(p + "/") for p in CSRF_EXEMPT_PREFIXES)


def tokens_match(cookie_token: str | None, header_token: str | None) -> bool:
  if not cookie_token or not header_token:
    return False
  a = cookie_token.encode("utf-8")
  b = header_token.encode("utf-8")
  if len(a) != len(b):
    return False
  return hmac.compare_digest(a, b)


def validate_csrf(request: Request) -> bool:
  return tokens_match(request.cookies.get(CSRF_COOKIE_NAME), request.headers.get(CSRF_HEADER_NAME))


def set_csrf_cookie(response: Response, token: str | None = None) -> str:
  token = token or generate_csrf_token()
  response.set_cookie(
    key=CSRF_COOKIE_NAME,
    value=token,
    max_age=int(settings.csrf_ttl_hours) * 3600,
    httponly=False,  # read by the client and echoed in the header
    secure=settings.secure_cookies,
    samesite="strict",
    path="/",
    domain=settings.cookie_domain,
  )
  return token


def clear_csrf_cookie(response: Response) -> None:
  response.delete_cookie(key=CSRF_COOKIE_NAME, path="/", domain=settings.cookie_domain)
