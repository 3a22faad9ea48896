from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from worksuite.security import PASSWORD_MAX_LENGTH, password_policy_problems

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _email(value: str) -> str:
  v = (value or "").strip().lower()
  if not _EMAIL_RE.fullmatch(v):
    raise ValueError("Invalid email address")
  return v


def _strong_password(value: str) -> str:
  problems = password_policy_problems(value or "")
  if problems:
    raise ValueError("; ".join(problems))
  return value


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  role: Literal["admin", "member", "viewer"]
  avatarUrl: str | None = None
  active: bool = True
  twoFactorEnabled: bool = False


class LoginIn(BaseModel):
  email: str = Field(max_length=320)
  password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
  code: str | None = Field(default=None, max_length=32)
  useBackupCode: bool = False

  @field_validator("email")
  @classmethod
  def _v_email(cls, v: str) -> str:
    return _email(v)


class LoginOut(BaseModel):
  success: bool = True
  user: UserOut


class RegisterIn(BaseModel):
  email: str = Field(max_length=320)
  name: str = Field(min_length=1, max_length=200)
  password: str

  @field_validator("email")
  @classmethod
  def _v_email(cls, v: str) -> str:
    return _email(v)

  @field_validator("password")
  @classmethod
  def _v_password(cls, v: str) -> str:
    return _strong_password(v)


class ChangePasswordIn(BaseModel):
  currentPassword: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
  newPassword: str

  @field_validator("newPassword")
  @classmethod
  def _v_password(cls, v: str) -> str:
    return _strong_password(v)


class ForgotPasswordIn(BaseModel):
  email: str = Field(max_length=320)

  @field_validator("email")
  @classmethod
  def _v_email(cls, v: str) -> str:
    return _email(v)


class ResetPasswordIn(BaseModel):
  token: str = Field(min_length=1, max_length=200)
  password: str

  @field_validator("password")
  @classmethod
  def _v_password(cls, v: str) -> str:
    return _strong_password(v)


class CsrfOut(BaseModel):
  csrfToken: str


class TwoFactorSetupOut(BaseModel):
  secret: str
  otpauthUri: str
  qrCode: str


class TwoFactorCodeIn(BaseModel):
  code: str = Field(min_length=6, max_length=8)

  @field_validator("code")
  @classmethod
  def _v_code(cls, v: str) -> str:
    c = v.strip().replace(" ", "")
    if len(c) != 6 or not c.isdigit():
      raise ValueError("Code must be 6 digits")
    return c


class PasswordConfirmIn(BaseModel):
  password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class BackupCodesOut(BaseModel):
  backupCodes: list[str]


class SessionOut(BaseModel):
  id: str
  deviceInfo: str | None = None
  ipAddress: str | None = None
  location: str | None = None
  createdAt: datetime
  lastActiveAt: datetime
  expiresAt: datetime
  isCurrent: bool = False


class SessionRevokeAllOut(BaseModel):
  ok: bool = True
  revoked: int


class LinkedAccountOut(BaseModel):
  id: str
  provider: str
  providerAccountId: str
  linkedAt: datetime


class UploadOut(BaseModel):
  path: str
  filename: str
  contentType: str
  size: int


class AuditOut(BaseModel):
  id: str
  actorId: str | None = None
  eventType: str
  entityType: str
  entityId: str | None = None
  payload: dict[str, Any]
  createdAt: datetime


class SetupStatusOut(BaseModel):
  needsSetup: bool
