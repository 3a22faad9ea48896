from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from worksuite import rate_limit
from worksuite.config import settings
from worksuite.csrf import CSRF_COOKIE_NAME, is_csrf_exempt, requires_csrf_validation, set_csrf_cookie, validate_csrf
from worksuite.errors import AuthenticationError, ConfigurationError, CsrfError, RateLimitError, error_response
from worksuite.tokens import AUTH_COOKIE_NAME, get_token_service

logger = logging.getLogger(__name__)

# Reachable without a session. Matched on path segment boundaries.
PUBLIC_PATH_PREFIXES = (
  "/api/auth/login",
  "/api/auth/register",
  "/api/auth/forgot-password",
  "/api/auth/reset-password",
  "/api/auth/csrf",
  "/api/auth/session",
  "/api/auth/providers",
  "/api/auth/callback",
  "/api/setup",
  "/api/check-license",
  "/api/support/email",
  "/api/debug",
  "/api/health",
)


def _matches(path: str, prefix: str) -> bool:
  return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def is_public_path(path: str) -> bool:
  return any(_matches(path, p) for p in PUBLIC_PATH_PREFIXES)


def _with_csrf_cookie(request: Request, response: Response) -> Response:
  if request.method not in ("GET", "HEAD") or CSRF_COOKIE_NAME in request.cookies:
    return response
  already = any(v.startswith(f"{CSRF_COOKIE_NAME}=") for v in response.headers.getlist("set-cookie"))
  if not already:
    set_csrf_cookie(response)
  return response


class RequestGatekeeper(BaseHTTPMiddleware):
  """
  Order for protected paths: session cookie (401), token signature (401),
  CSRF on mutating requests (403), per-user API rate limit (429).
  Verified claims are attached as ``request.state.identity``.
  """

  def __init__(self, app: ASGIApp, *, protected_prefix: str = "/api", limiter: rate_limit.RateLimiter | None = None) -> None:
    super().__init__(app)
    self.protected_prefix = protected_prefix
    self._limiter = limiter

  @property
  def limiter(self) -> rate_limit.RateLimiter:
    return self._limiter or rate_limit.limiter

  async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
    path = request.url.path
    if request.method == "OPTIONS" or not _matches(path, self.protected_prefix) or is_public_path(path):
      return _with_csrf_cookie(request, await call_next(request))

    token = request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
      return error_response(AuthenticationError("Not authenticated"))

    try:
      service = get_token_service()
    except ConfigurationError as exc:
      logger.critical("Refusing authenticated request: %s", exc)
      return error_response(exc)

    claims = service.verify(token)
    if claims is None:
      return error_response(AuthenticationError("Invalid or expired token"))

    if requires_csrf_validation(request.method) and not is_csrf_exempt(path) and not validate_csrf(request):
      logger.warning("CSRF validation failed", extra={"path": path, "method": request.method, "user_id": claims.uid})
      return error_response(CsrfError())

    if settings.rate_limit_api_enabled:
      try:
        await self.limiter.enforce(claims.uid, rate_limit.api_policy())
      except RateLimitError as exc:
        return error_response(exc)

    request.state.identity = claims
    return _with_csrf_cookie(request, await call_next(request))
