from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def _uuid() -> str:
  return str(uuid.uuid4())


class UtcDateTime(TypeDecorator):
  """Timezone-aware UTC datetimes on every dialect (SQLite drops tzinfo)."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
    if value is None:
      return None
    if value.tzinfo is None:
      value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

  def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
    if value is not None and value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    return value


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String(200), nullable=False)
  # Null for accounts that only sign in through a linked OAuth provider.
  password_hash: Mapped[str | None] = mapped_column(String, nullable=True)
  role: Mapped[str] = mapped_column(String(32), nullable=False, default="member")
  avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  two_factor_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  two_factor_secret_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
  two_factor_verified_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  backup_code_hashes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, onupdate=utcnow, nullable=False)


class UserSession(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
  device_info: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
  location: Mapped[str | None] = mapped_column(String, nullable=True)
  is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  last_active_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)


class PasswordResetToken(Base):
  __tablename__ = "password_reset_tokens"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
  request_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  used_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
  expires_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)


class LinkedAccount(Base):
  __tablename__ = "linked_accounts"
  __table_args__ = (UniqueConstraint("provider", "provider_account_id", name="uq_linked_accounts_provider_account"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  provider: Mapped[str] = mapped_column(String(64), nullable=False)
  provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
  actor_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  event_type: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
  entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(UtcDateTime, default=utcnow, nullable=False, index=True)
