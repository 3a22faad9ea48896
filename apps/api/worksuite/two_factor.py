"""Two-factor enrollment state machine.

NO_SECRET -> (setup) -> PENDING_VERIFICATION -> (verify_setup) -> ACTIVE -> (disable) -> NO_SECRET

Functions mutate the user row in the caller's session; callers commit.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from worksuite.config import settings
from worksuite.errors import AuthenticationError, ConflictError, ValidationError
from worksuite.models import User, utcnow
from worksuite.security import decrypt_secret, encrypt_secret, verify_password
from worksuite.totp import (
  backup_code_hash,
  backup_codes_generate,
  new_secret,
  provisioning_uri,
  qr_code_data_url,
  totp_verify,
)

logger = logging.getLogger(__name__)


class TwoFactorState(str, enum.Enum):
  NO_SECRET = "no_secret"
  PENDING_VERIFICATION = "pending_verification"
  ACTIVE = "active"


@dataclass(frozen=True)
class SetupResult:
  secret: str
  otpauth_uri: str
  qr_code: str


def state_of(user: User) -> TwoFactorState:
  if not user.two_factor_secret_encrypted:
    return TwoFactorState.NO_SECRET
  if user.two_factor_enabled and user.two_factor_verified_at is not None:
    return TwoFactorState.ACTIVE
  return TwoFactorState.PENDING_VERIFICATION


def _issue_backup_codes(user: User) -> list[str]:
  codes = backup_codes_generate(int(settings.backup_code_count))
  user.backup_code_hashes = [backup_code_hash(c) for c in codes]
  return codes


def _require_password(user: User, password: str | None) -> None:
  if not verify_password(password or "", user.password_hash):
    raise AuthenticationError("Incorrect password")


def start_setup(user: User) -> SetupResult:
  """Issue a fresh secret. Re-running from ACTIVE replaces the old secret and backup codes."""
  # Encrypt before touching the row so a missing key leaves state unchanged.
  secret = new_secret()
  encrypted = encrypt_secret(secret)
  user.two_factor_secret_encrypted = encrypted
  user.two_factor_enabled = False
  user.two_factor_verified_at = None
  user.backup_code_hashes = []
  uri = provisioning_uri(secret, account=user.email, issuer=settings.totp_issuer)
  return SetupResult(secret=secret, otpauth_uri=uri, qr_code=qr_code_data_url(uri))


def verify_setup(user: User, code: str) -> list[str]:
  state = state_of(user)
  if state is TwoFactorState.NO_SECRET:
    raise ValidationError("2FA setup not initiated")
  if state is TwoFactorState.ACTIVE:
    raise ConflictError("Two-factor authentication is already enabled")
  secret = decrypt_secret(user.two_factor_secret_encrypted or "")
  if not totp_verify(secret, code):
    raise ValidationError("Invalid verification code")
  user.two_factor_enabled = True
  user.two_factor_verified_at = utcnow()
  return _issue_backup_codes(user)


def disable(user: User, password: str | None) -> None:
  _require_password(user, password)
  user.two_factor_enabled = False
  user.two_factor_secret_encrypted = None
  user.two_factor_verified_at = None
  user.backup_code_hashes = []


def regenerate_backup_codes(user: User, password: str | None) -> list[str]:
  _require_password(user, password)
  if state_of(user) is not TwoFactorState.ACTIVE:
    raise ValidationError("2FA is not enabled")
  return _issue_backup_codes(user)


def verify_second_factor(user: User, code: str | None, *, use_backup_code: bool = False) -> bool:
  """Check a login code. A matching backup code is removed from the user's set."""
  if state_of(user) is not TwoFactorState.ACTIVE or not code:
    return False
  if use_backup_code:
    h = backup_code_hash(code)
    hashes = list(user.backup_code_hashes or [])
    if h not in hashes:
      return False
    hashes.remove(h)
    # reassign so the JSON column is flagged dirty
    user.backup_code_hashes = hashes
    logger.info("Backup code consumed", extra={"user_id": user.id, "remaining_codes": len(hashes)})
    return True
  secret = decrypt_secret(user.two_factor_secret_encrypted or "")
  return totp_verify(secret, code)
