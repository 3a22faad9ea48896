from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.deps import get_db, require_role
from worksuite.models import AuditEvent, User
from worksuite.schemas import AuditOut

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/audit-events", response_model=list[AuditOut])
async def list_audit_events(
  eventType: str | None = None,
  limit: int = Query(default=100, ge=1, le=500),
  user: User = Depends(require_role("admin")),
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  q = select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(limit)
  if eventType:
    q = q.where(AuditEvent.event_type == eventType)
  res = await db.execute(q)
  return [
    AuditOut(
      id=ev.id,
      actorId=ev.actor_id,
      eventType=ev.event_type,
      entityType=ev.entity_type,
      entityId=ev.entity_id,
      payload=ev.payload,
      createdAt=ev.created_at,
    )
    for ev in res.scalars().all()
  ]
