from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite import two_factor
from worksuite.audit import write_audit
from worksuite.deps import get_current_user, get_db
from worksuite.models import User
from worksuite.schemas import BackupCodesOut, PasswordConfirmIn, TwoFactorCodeIn, TwoFactorSetupOut

router = APIRouter(prefix="/api/auth/2fa", tags=["two-factor"])


@router.post("/setup", response_model=TwoFactorSetupOut)
async def setup(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TwoFactorSetupOut:
  result = two_factor.start_setup(user)
  await write_audit(db, event_type="auth.2fa.setup", entity_type="User", entity_id=user.id, actor_id=user.id, payload={})
  await db.commit()
  return TwoFactorSetupOut(secret=result.secret, otpauthUri=result.otpauth_uri, qrCode=result.qr_code)


@router.post("/verify-setup", response_model=BackupCodesOut)
async def verify_setup(
  payload: TwoFactorCodeIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BackupCodesOut:
  codes = two_factor.verify_setup(user, payload.code)
  await write_audit(db, event_type="auth.2fa.enabled", entity_type="User", entity_id=user.id, actor_id=user.id, payload={})
  await db.commit()
  # Shown once; only hashes are kept.
  return BackupCodesOut(backupCodes=codes)


@router.post("/disable")
async def disable(payload: PasswordConfirmIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  two_factor.disable(user, payload.password)
  await write_audit(db, event_type="auth.2fa.disabled", entity_type="User", entity_id=user.id, actor_id=user.id, payload={})
  await db.commit()
  return {"ok": True}


@router.post("/regenerate-codes", response_model=BackupCodesOut)
async def regenerate_codes(
  payload: PasswordConfirmIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BackupCodesOut:
  codes = two_factor.regenerate_backup_codes(user, payload.password)
  await write_audit(
    db, event_type="auth.2fa.backup_codes.regenerated", entity_type="User", entity_id=user.id, actor_id=user.id, payload={}
  )
  await db.commit()
  return BackupCodesOut(backupCodes=codes)
