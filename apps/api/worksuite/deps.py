from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.config import settings
from worksuite.db import SessionLocal
from worksuite.errors import AuthenticationError, AuthorizationError
from worksuite.models import User
from worksuite.sessions import find_session_by_token, is_active, touch_session
from worksuite.tokens import AUTH_COOKIE_NAME, Claims


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


def client_ip(request: Request) -> str | None:
  if settings.trust_proxy_headers:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
      return forwarded
    real = (request.headers.get("x-real-ip") or "").strip()
    if real:
      return real
  return request.client.host if request.client else None


def get_auth_token(request: Request) -> str | None:
  return request.cookies.get(AUTH_COOKIE_NAME)


def get_identity(request: Request) -> Claims:
  identity = getattr(request.state, "identity", None)
  if not isinstance(identity, Claims):
    raise AuthenticationError("Not authenticated")
  return identity


async def get_current_user(
  request: Request,
  db: AsyncSession = Depends(get_db),
  identity: Claims = Depends(get_identity),
) -> User:
  token = get_auth_token(request)
  s = await find_session_by_token(db, token) if token else None
  # No record means recording failed at login; the signed token still stands.
  if s is not None and not is_active(s):
    raise AuthenticationError("Session has been revoked or has expired")

  u = await db.get(User, identity.uid)
  if u is None:
    raise AuthenticationError("User not found")
  if not u.active:
    raise AuthorizationError("User disabled")
  if s is not None:
    await touch_session(db, s)
  return u


def require_role(*roles: str) -> Callable[..., Awaitable[User]]:
  async def _dep(user: User = Depends(get_current_user)) -> User:
    if user.role not in roles:
      raise AuthorizationError("Forbidden")
    return user

  return _dep
