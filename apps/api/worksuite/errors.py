from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi.responses import JSONResponse


class AppError(Exception):
  """Base class for errors that map onto an HTTP status and a JSON body."""

  status_code = 500
  default_detail: Any = "Internal server error"

  def __init__(self, detail: Any = None, *, headers: dict[str, str] | None = None) -> None:
    self.detail = self.default_detail if detail is None else detail
    self.headers = headers or {}
    super().__init__(str(self.detail))

  def body(self) -> dict[str, Any]:
    return {"detail": self.detail}


class ValidationError(AppError):
  status_code = 400
  default_detail = "Invalid request"


class AuthenticationError(AppError):
  status_code = 401
  default_detail = "Not authenticated"


class TwoFactorRequiredError(AuthenticationError):
  default_detail = "Two-factor authentication required"

  def body(self) -> dict[str, Any]:
    return {"detail": self.detail, "requires2FA": True}


class AuthorizationError(AppError):
  status_code = 403
  default_detail = "Forbidden"


class CsrfError(AuthorizationError):
  # Same payload as any other 403 so clients cannot tell the two apart.
  def __init__(self) -> None:
    super().__init__("Forbidden")


class NotFoundError(AppError):
  status_code = 404
  default_detail = "Not found"


class ConflictError(AppError):
  status_code = 409
  default_detail = "Conflict"


class RateLimitError(AppError):
  status_code = 429
  default_detail = "Too many requests"

  def __init__(self, *, limit: int, reset_at: datetime, retry_after: int, message: str | None = None) -> None:
    self.limit = limit
    self.reset_at = reset_at
    self.retry_after = max(1, int(retry_after))
    super().__init__(
      {
        "code": "rate_limited",
        "message": message or "Too many requests",
        "resetAt": reset_at.isoformat(),
        "retryAfterSeconds": self.retry_after,
      },
      headers={
        "Retry-After": str(self.retry_after),
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(int(reset_at.timestamp())),
      },
    )


class ConfigurationError(AppError):
  status_code = 500
  public_detail = "Server misconfiguration"

  def body(self) -> dict[str, Any]:
    return {"detail": self.public_detail}


class DependencyError(AppError):
  status_code = 503
  public_detail = "Service temporarily unavailable"

  def body(self) -> dict[str, Any]:
    return {"detail": self.public_detail}


def error_response(exc: AppError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=exc.headers or None)
