from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.errors import ConflictError, NotFoundError, ValidationError
from worksuite.models import LinkedAccount, User


def _provider_key(provider: str) -> str:
  p = (provider or "").strip().lower()
  if not p:
    raise ValidationError("Provider is required")
  return p


async def list_linked_accounts(db: AsyncSession, user_id: str) -> list[LinkedAccount]:
  res = await db.execute(
    select(LinkedAccount).where(LinkedAccount.user_id == user_id).order_by(LinkedAccount.created_at.asc())
  )
  return list(res.scalars().all())


async def link_account(db: AsyncSession, *, user_id: str, provider: str, provider_account_id: str) -> LinkedAccount:
  p = _provider_key(provider)
  pid = (provider_account_id or "").strip()
  if not pid:
    raise ValidationError("Provider account id is required")
  res = await db.execute(
    select(LinkedAccount).where(LinkedAccount.provider == p, LinkedAccount.provider_account_id == pid)
  )
  existing = res.scalar_one_or_none()
  if existing is not None:
    if existing.user_id != user_id:
      raise ConflictError("This account is already linked to another user")
    return existing
  acct = LinkedAccount(user_id=user_id, provider=p, provider_account_id=pid)
  db.add(acct)
  await db.flush()
  return acct


async def unlink_account(
  db: AsyncSession,
  *,
  user: User,
  account_id: str | None = None,
  provider: str | None = None,
) -> int:
  if not account_id and not provider:
    raise ValidationError("accountId or provider is required")

  q = select(LinkedAccount).where(LinkedAccount.user_id == user.id)
  if account_id:
    q = q.where(LinkedAccount.id == account_id)
  if provider:
    q = q.where(LinkedAccount.provider == _provider_key(provider))
  res = await db.execute(q)
  targets = list(res.scalars().all())
  if not targets:
    raise NotFoundError("Linked account not found")

  total = await db.scalar(select(func.count()).select_from(LinkedAccount).where(LinkedAccount.user_id == user.id))
  if not user.password_hash and int(total or 0) - len(targets) < 1:
    raise ValidationError("Cannot unlink the last sign-in method. Set a password first.")

  await db.execute(delete(LinkedAccount).where(LinkedAccount.id.in_([t.id for t in targets])))
  return len(targets)
