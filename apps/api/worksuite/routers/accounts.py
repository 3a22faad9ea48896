from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.accounts import list_linked_accounts, unlink_account
from worksuite.audit import write_audit
from worksuite.deps import get_current_user, get_db
from worksuite.models import User
from worksuite.schemas import LinkedAccountOut

router = APIRouter(prefix="/api/auth/linked-accounts", tags=["accounts"])


@router.get("", response_model=list[LinkedAccountOut])
async def list_accounts(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[LinkedAccountOut]:
  return [
    LinkedAccountOut(id=a.id, provider=a.provider, providerAccountId=a.provider_account_id, linkedAt=a.created_at)
    for a in await list_linked_accounts(db, user.id)
  ]


@router.delete("")
async def unlink(
  accountId: str | None = None,
  provider: str | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  removed = await unlink_account(db, user=user, account_id=accountId, provider=provider)
  await write_audit(
    db,
    event_type="auth.account.unlinked",
    entity_type="User",
    entity_id=user.id,
    actor_id=user.id,
    payload={"accountId": accountId, "provider": provider, "removed": removed},
  )
  await db.commit()
  return {"ok": True, "removed": removed}
