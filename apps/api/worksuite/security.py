from __future__ import annotations

import base64
import hashlib
import re
import secrets

from cryptography.fernet import Fernet, InvalidToken
from passlib.context import CryptContext

from worksuite.config import settings
from worksuite.errors import ConfigurationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


class SecretDecryptError(ConfigurationError):
  pass


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
  if not password or not password_hash:
    return False
  try:
    return pwd_context.verify(password, password_hash)
  except ValueError:
    # malformed stored hash
    return False


def password_policy_problems(password: str) -> list[str]:
  problems: list[str] = []
  if len(password) < PASSWORD_MIN_LENGTH:
    problems.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
  if len(password) > PASSWORD_MAX_LENGTH:
    problems.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")
  if not re.search(r"[a-z]", password):
    problems.append("Password must contain at least one lowercase letter")
  if not re.search(r"[A-Z]", password):
    problems.append("Password must contain at least one uppercase letter")
  if not re.search(r"\d", password):
    problems.append("Password must contain at least one number")
  return problems


def _fernet() -> Fernet:
  key = (settings.encryption_key or "").strip()
  if not key:
    raise ConfigurationError("ENCRYPTION_KEY is not configured")
  try:
    return Fernet(key.encode("utf-8"))
  except (ValueError, TypeError) as exc:
    raise ConfigurationError("ENCRYPTION_KEY must be a url-safe base64 encoded 32-byte key") from exc


def encrypt_secret(value: str) -> str:
  return _fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_secret(value: str) -> str:
  try:
    return _fernet().decrypt(value.encode("utf-8")).decode("utf-8")
  except InvalidToken as exc:
    raise SecretDecryptError("Stored secret cannot be decrypted with the current ENCRYPTION_KEY") from exc


def new_url_token(nbytes: int = 32) -> str:
  return base64.urlsafe_b64encode(secrets.token_bytes(nbytes)).decode("ascii").rstrip("=")


def hash_token(token: str) -> str:
  return hashlib.sha256((token or "").strip().encode("utf-8")).hexdigest()
