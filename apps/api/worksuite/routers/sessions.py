from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.audit import write_audit
from worksuite.deps import get_auth_token, get_current_user, get_db
from worksuite.models import User, UserSession
from worksuite.schemas import SessionOut, SessionRevokeAllOut
from worksuite.security import hash_token
from worksuite.sessions import list_active_sessions, revoke_all_sessions, revoke_session

router = APIRouter(prefix="/api/auth/sessions", tags=["sessions"])


def _session_out(s: UserSession, current_hash: str | None) -> SessionOut:
  return SessionOut(
    id=s.id,
    deviceInfo=s.device_info,
    ipAddress=s.ip_address,
    location=s.location,
    createdAt=s.created_at,
    lastActiveAt=s.last_active_at,
    expiresAt=s.expires_at,
    isCurrent=current_hash is not None and s.token_hash == current_hash,
  )


@router.get("", response_model=list[SessionOut])
async def list_sessions(request: Request, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[SessionOut]:
  token = get_auth_token(request)
  current_hash = hash_token(token) if token else None
  return [_session_out(s, current_hash) for s in await list_active_sessions(db, user.id)]


@router.delete("", response_model=SessionRevokeAllOut)
async def revoke_all(request: Request, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> SessionRevokeAllOut:
  revoked = await revoke_all_sessions(db, user.id, except_token=get_auth_token(request))
  await write_audit(db, event_type="auth.session.revoked_all", entity_type="User", entity_id=user.id, actor_id=user.id, payload={"revoked": revoked})
  await db.commit()
  return SessionRevokeAllOut(revoked=revoked)


@router.delete("/{session_id}")
async def revoke_one(session_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  s = await revoke_session(db, session_id=session_id, user_id=user.id)
  await write_audit(db, event_type="auth.session.revoked", entity_type="Session", entity_id=s.id, actor_id=user.id, payload={})
  await db.commit()
  return {"ok": True}
