"""Persisted login records used to list and revoke sessions.

Records are never deleted: revocation flips ``is_valid`` so the history stays
auditable. A record is active while it is valid and not yet expired.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.errors import NotFoundError
from worksuite.models import UserSession, utcnow
from worksuite.security import hash_token

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown"
TOUCH_INTERVAL = timedelta(minutes=1)

_BROWSERS = (
  ("Edge", re.compile(r"Edg(?:e|A|iOS)?/([\d.]+)")),
  ("Opera", re.compile(r"(?:OPR|Opera)/([\d.]+)")),
  ("Firefox", re.compile(r"(?:Firefox|FxiOS)/([\d.]+)")),
  ("Chrome", re.compile(r"(?:Chrome|CriOS)/([\d.]+)")),
  ("Safari", re.compile(r"Version/([\d.]+).*Safari/")),
)
_SYSTEMS = (
  ("iOS", re.compile(r"(?:iPhone|iPad|iPod).*? OS ([\d_]+)")),
  ("Android", re.compile(r"Android ([\d.]+)")),
  ("Windows", re.compile(r"Windows NT ([\d.]+)")),
  ("macOS", re.compile(r"Mac OS X ([\d_]+)")),
  ("Linux", re.compile(r"Linux()")),
)


def describe_device(user_agent: str | None) -> str:
  ua = user_agent or ""
  os_name, os_version = "Unknown OS", ""
  for name, rx in _SYSTEMS:
    m = rx.search(ua)
    if m:
      os_name, os_version = name, m.group(1).replace("_", ".")
      break
  browser = "Unknown Browser"
  for name, rx in _BROWSERS:
    if rx.search(ua):
      browser = name
      break
  return f"{os_name} {os_version}".strip() + f" - {browser}"


def is_active(s: UserSession, now: datetime | None = None) -> bool:
  return bool(s.is_valid) and s.expires_at > (now or utcnow())


async def create_session(
  db: AsyncSession,
  *,
  user_id: str,
  token: str,
  expires_at: datetime,
  ip_address: str | None,
  user_agent: str | None,
) -> UserSession | None:
  """Record a login. Never raises: a failure here must not block the login."""
  s = UserSession(
    user_id=user_id,
    token_hash=hash_token(token),
    device_info=describe_device(user_agent),
    user_agent=(user_agent or "")[:512] or None,
    ip_address=ip_address or "Unknown",
    location=UNKNOWN_LOCATION,
    expires_at=expires_at,
  )
  try:
    db.add(s)
    await db.commit()
  except SQLAlchemyError:
    await db.rollback()
    logger.exception("Failed to record session", extra={"user_id": user_id})
    return None
  return s


async def list_active_sessions(db: AsyncSession, user_id: str, *, now: datetime | None = None) -> list[UserSession]:
  res = await db.execute(
    select(UserSession)
    .where(UserSession.user_id == user_id, UserSession.is_valid.is_(True), UserSession.expires_at > (now or utcnow()))
    .order_by(UserSession.last_active_at.desc())
  )
  return list(res.scalars().all())


async def find_session_by_token(db: AsyncSession, token: str) -> UserSession | None:
  res = await db.execute(select(UserSession).where(UserSession.token_hash == hash_token(token)))
  return res.scalar_one_or_none()


async def touch_session(db: AsyncSession, s: UserSession, *, now: datetime | None = None) -> bool:
  now = now or utcnow()
  if now - s.last_active_at < TOUCH_INTERVAL:
    return False
  s.last_active_at = now
  await db.commit()
  return True


async def revoke_session(db: AsyncSession, *, session_id: str, user_id: str) -> UserSession:
  res = await db.execute(select(UserSession).where(UserSession.id == session_id, UserSession.user_id == user_id))
  s = res.scalar_one_or_none()
  # A foreign session is reported exactly like a missing one.
  if s is None:
    raise NotFoundError("Session not found")
  s.is_valid = False
  return s


async def revoke_all_sessions(db: AsyncSession, user_id: str, *, except_token: str | None = None) -> int:
  q = update(UserSession).where(UserSession.user_id == user_id, UserSession.is_valid.is_(True))
  if except_token:
    q = q.where(UserSession.token_hash != hash_token(except_token))
  res = await db.execute(q.values(is_valid=False).execution_options(synchronize_session=False))
  return int(res.rowcount or 0)
