from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.config import settings
from worksuite.deps import get_db
from worksuite.models import User
from worksuite.schemas import SetupStatusOut

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/health")
async def health() -> dict:
  return {"ok": True, "version": settings.app_version}


@router.get("/setup/status", response_model=SetupStatusOut)
async def setup_status(db: AsyncSession = Depends(get_db)) -> SetupStatusOut:
  count = await db.scalar(select(func.count()).select_from(User))
  return SetupStatusOut(needsSetup=not count)
