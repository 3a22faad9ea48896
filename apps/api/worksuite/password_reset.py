"""Password reset token lifecycle.

A user holds at most one unused token: issuing a new one marks the previous
ones used. Redemption updates the password, burns the token and its siblings
and revokes every session, all in the caller's transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.config import settings
from worksuite.errors import ValidationError
from worksuite.models import PasswordResetToken, User, utcnow
from worksuite.security import hash_password, hash_token, new_url_token
from worksuite.sessions import revoke_all_sessions


class ResetTokenError(ValidationError):
  code = "invalid_token"
  message = "Invalid or unknown reset token"

  def __init__(self) -> None:
    super().__init__({"code": self.code, "message": self.message})


class ResetTokenExpiredError(ResetTokenError):
  code = "token_expired"
  message = "This reset link has expired. Please request a new one."


class ResetTokenUsedError(ResetTokenError):
  code = "token_used"
  message = "This reset link has already been used."


@dataclass(frozen=True)
class IssuedResetToken:
  user: User
  token: str
  expires_at: datetime


def normalize_email(email: str | None) -> str:
  return (email or "").strip().lower()


def reset_url(token: str) -> str:
  return f"{settings.app_url.rstrip('/')}/auth/reset-password?token={token}"


async def _burn_unused(db: AsyncSession, user_id: str, now: datetime) -> None:
  await db.execute(
    update(PasswordResetToken)
    .where(PasswordResetToken.user_id == user_id, PasswordResetToken.used_at.is_(None))
    .values(used_at=now)
    .execution_options(synchronize_session=False)
  )


async def request_reset(db: AsyncSession, *, email: str, request_ip: str | None = None) -> IssuedResetToken | None:
  """Issue a token for the account, or return None when there is no such account."""
  res = await db.execute(select(User).where(User.email == normalize_email(email)))
  u = res.scalar_one_or_none()
  if u is None or not u.active:
    return None
  now = utcnow()
  await _burn_unused(db, u.id, now)
  token = new_url_token(32)
  expires_at = now + timedelta(minutes=int(settings.password_reset_ttl_minutes))
  db.add(
    PasswordResetToken(
      user_id=u.id,
      token_hash=hash_token(token),
      request_ip=request_ip,
      expires_at=expires_at,
      created_at=now,
    )
  )
  return IssuedResetToken(user=u, token=token, expires_at=expires_at)


async def confirm_reset(db: AsyncSession, *, token: str, new_password: str) -> User:
  res = await db.execute(select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_token(token)))
  t = res.scalar_one_or_none()
  if t is None:
    raise ResetTokenError()
  now = utcnow()
  if t.used_at is not None:
    raise ResetTokenUsedError()
  if t.expires_at < now:
    raise ResetTokenExpiredError()

  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if u is None:
    raise ResetTokenError()

  u.password_hash = hash_password(new_password)
  t.used_at = now
  await _burn_unused(db, u.id, now)
  await revoke_all_sessions(db, u.id)
  return u
