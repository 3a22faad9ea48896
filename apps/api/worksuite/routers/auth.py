from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.audit import write_audit
from worksuite.config import settings
from worksuite.csrf import CSRF_COOKIE_NAME, clear_csrf_cookie, set_csrf_cookie
from worksuite.deps import client_ip, get_auth_token, get_current_user, get_db
from worksuite.errors import AuthenticationError, AuthorizationError, TwoFactorRequiredError, ValidationError
from worksuite.mailer import send_password_reset_email
from worksuite.models import User
from worksuite.password_reset import confirm_reset, request_reset, reset_url
from worksuite.rate_limit import limiter, login_policy, password_reset_policy, signup_policy
from worksuite.schemas import (
  ChangePasswordIn,
  CsrfOut,
  ForgotPasswordIn,
  LoginIn,
  LoginOut,
  RegisterIn,
  ResetPasswordIn,
  UserOut,
)
from worksuite.security import hash_password, verify_password
from worksuite.sessions import create_session, find_session_by_token, revoke_all_sessions
from worksuite.tokens import AUTH_COOKIE_NAME, Claims, get_token_service
from worksuite.two_factor import TwoFactorState, state_of, verify_second_factor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, we've sent a password reset link."


def user_out(u: User) -> UserOut:
  return UserOut(
    id=u.id,
    email=u.email,
    name=u.name,
    role=u.role,
    avatarUrl=u.avatar_url,
    active=bool(u.active),
    twoFactorEnabled=state_of(u) is TwoFactorState.ACTIVE,
  )


def _set_auth_cookie(response: Response, token: str) -> None:
  response.set_cookie(
    key=AUTH_COOKIE_NAME,
    value=token,
    max_age=int(settings.token_ttl_hours) * 3600,
    httponly=True,
    secure=settings.secure_cookies,
    samesite="lax",
    path="/",
    domain=settings.cookie_domain,
  )


@router.post("/login", response_model=LoginOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> LoginOut:
  ip = client_ip(request) or "unknown"
  await limiter.enforce(ip, login_policy())
  # Fail before touching credentials when tokens cannot be signed.
  service = get_token_service()

  res = await db.execute(select(User).where(User.email == payload.email))
  u = res.scalar_one_or_none()
  if u is None or not verify_password(payload.password, u.password_hash):
    await write_audit(db, event_type="auth.login.failed", entity_type="Auth", entity_id=None, payload={"email": payload.email, "ip": ip})
    await db.commit()
    logger.warning("Failed login attempt", extra={"ip": ip})
    raise AuthenticationError("Invalid email or password")
  if not u.active:
    raise AuthorizationError("User disabled")

  if state_of(u) is TwoFactorState.ACTIVE:
    if not payload.code:
      raise TwoFactorRequiredError()
    if not verify_second_factor(u, payload.code, use_backup_code=payload.useBackupCode):
      await write_audit(db, event_type="auth.login.failed", entity_type="User", entity_id=u.id, payload={"ip": ip, "reason": "2fa"})
      await db.commit()
      logger.warning("Invalid second factor", extra={"ip": ip, "user_id": u.id})
      raise TwoFactorRequiredError("Invalid authentication code")

  issued = service.issue(Claims(uid=u.id, email=u.email, role=u.role))
  await write_audit(
    db,
    event_type="auth.login.success",
    entity_type="User",
    entity_id=u.id,
    actor_id=u.id,
    payload={"ip": ip, "backupCode": bool(payload.code and payload.useBackupCode)},
  )
  await db.commit()

  await create_session(
    db,
    user_id=u.id,
    token=issued.token,
    expires_at=issued.expires_at,
    ip_address=ip,
    user_agent=request.headers.get("user-agent"),
  )
  _set_auth_cookie(response, issued.token)
  set_csrf_cookie(response)
  return LoginOut(user=user_out(u))


@router.post("/logout")
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)) -> dict:
  token = get_auth_token(request)
  s = await find_session_by_token(db, token) if token else None
  if s is not None:
    s.is_valid = False
  await write_audit(db, event_type="auth.logout", entity_type="User", entity_id=user.id, actor_id=user.id, payload={})
  await db.commit()
  response.delete_cookie(key=AUTH_COOKIE_NAME, path="/", domain=settings.cookie_domain)
  clear_csrf_cookie(response)
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return user_out(user)


@router.get("/csrf", response_model=CsrfOut)
async def csrf_token(request: Request, response: Response) -> CsrfOut:
  token = request.cookies.get(CSRF_COOKIE_NAME)
  return CsrfOut(csrfToken=set_csrf_cookie(response, token))


@router.post("/register", response_model=UserOut)
async def register(payload: RegisterIn, request: Request, db: AsyncSession = Depends(get_db)) -> UserOut:
  ip = client_ip(request) or "unknown"
  await limiter.enforce(ip, signup_policy())
  existing = await db.scalar(select(func.count()).select_from(User))
  if existing:
    raise AuthorizationError("Registration is closed")
  # The first account administers the installation.
  u = User(email=payload.email, name=payload.name.strip(), role="admin", password_hash=hash_password(payload.password))
  db.add(u)
  await db.flush()
  await write_audit(db, event_type="auth.register", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"ip": ip})
  await db.commit()
  return user_out(u)


@router.post("/change-password")
async def change_password(
  payload: ChangePasswordIn,
  request: Request,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  if not verify_password(payload.currentPassword, user.password_hash):
    raise ValidationError("Current password is incorrect")
  user.password_hash = hash_password(payload.newPassword)
  revoked = await revoke_all_sessions(db, user.id, except_token=get_auth_token(request))
  await write_audit(db, event_type="auth.password.changed", entity_type="User", entity_id=user.id, actor_id=user.id, payload={"revokedSessions": revoked})
  await db.commit()
  return {"ok": True}


@router.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordIn, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
  ip = client_ip(request) or "unknown"
  policy = password_reset_policy()
  await limiter.enforce(f"ip:{ip}", policy)
  await limiter.enforce(f"email:{payload.email}", policy)

  issued = await request_reset(db, email=payload.email, request_ip=ip)
  if issued is not None:
    await write_audit(db, event_type="auth.password_reset.requested", entity_type="User", entity_id=issued.user.id, payload={"ip": ip})
  await db.commit()

  if issued is not None:
    await send_password_reset_email(to_addr=issued.user.email, reset_url=reset_url(issued.token))

  out: dict = {"ok": True, "message": FORGOT_PASSWORD_MESSAGE}
  if issued is not None and settings.dev_email_capture and not settings.is_production:
    out["token"] = issued.token
  return out


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordIn, request: Request, db: AsyncSession = Depends(get_db)) -> dict:
  ip = client_ip(request) or "unknown"
  await limiter.enforce(f"confirm:{ip}", password_reset_policy())
  u = await confirm_reset(db, token=payload.token, new_password=payload.password)
  await write_audit(db, event_type="auth.password_reset.completed", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"ip": ip})
  await db.commit()
  return {"ok": True, "message": "Password has been reset. You can now sign in."}
