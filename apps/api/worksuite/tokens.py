from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Mapping

import jwt
from jwt.exceptions import PyJWTError

from worksuite.config import settings
from worksuite.errors import ConfigurationError

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "auth-token"


class TokenError(Exception):
  pass


class TokenExpiredError(TokenError):
  pass


class InvalidTokenError(TokenError):
  pass


@dataclass(frozen=True)
class Claims:
  uid: str
  email: str
  role: str

  @classmethod
  def from_payload(cls, payload: Mapping[str, Any]) -> Claims:
    values = {"uid": payload.get("sub"), "email": payload.get("email"), "role": payload.get("role")}
    missing = [k for k, v in values.items() if not isinstance(v, str) or not v]
    if missing:
      raise InvalidTokenError(f"Token is missing claims: {', '.join(missing)}")
    return cls(**values)


@dataclass(frozen=True)
class IssuedToken:
  token: str
  expires_at: datetime


class TokenService:
  """Signs and verifies stateless session tokens (HS256 JWT)."""

  def __init__(self, secret: str, *, algorithm: str = "HS256", ttl: timedelta = timedelta(hours=24)) -> None:
    if not secret or not secret.strip():
      raise ConfigurationError("JWT_SECRET is not configured")
    self._secret = secret
    self.algorithm = algorithm
    self.ttl = ttl

  def issue(self, claims: Claims, *, now: datetime | None = None) -> IssuedToken:
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + self.ttl
    payload = {
      "sub": claims.uid,
      "email": claims.email,
      "role": claims.role,
      "iat": issued_at,
      "exp": expires_at,
      # two logins within the same second must not produce the same token
      "jti": secrets.token_hex(8),
    }
    token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
    return IssuedToken(token=token, expires_at=expires_at)

  def sign(self, claims: Claims) -> str:
    return self.issue(claims).token

  def decode(self, token: str) -> Claims:
    try:
      payload = jwt.decode(
        token,
        self._secret,
        algorithms=[self.algorithm],
        options={"require": ["exp", "iat", "sub"]},
      )
    except jwt.ExpiredSignatureError as exc:
      raise TokenExpiredError("Token has expired") from exc
    except PyJWTError as exc:
      raise InvalidTokenError(f"Invalid token: {exc}") from exc
    return Claims.from_payload(payload)

  def verify(self, token: str | None) -> Claims | None:
    if not token:
      return None
    try:
      return self.decode(token)
    except TokenError as exc:
      logger.debug("Token rejected: %s", exc)
      return None


@lru_cache(maxsize=4)
def _token_service(secret: str, algorithm: str, ttl_hours: int) -> TokenService:
  return TokenService(secret, algorithm=algorithm, ttl=timedelta(hours=ttl_hours))


def get_token_service() -> TokenService:
  return _token_service(settings.jwt_secret, settings.jwt_algorithm, int(settings.token_ttl_hours))
