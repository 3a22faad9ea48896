from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from worksuite.audit import write_audit
from worksuite.deps import get_current_user, get_db
from worksuite.models import User
from worksuite.schemas import UploadOut
from worksuite.uploads import UploadPolicy, avatar_policy, document_policy, store_upload, validate_upload

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


async def _accept(file: UploadFile, policy: UploadPolicy, *, subdir: str) -> UploadOut:
  # one byte past the limit is enough to reject oversized files
  data = await file.read(policy.max_bytes + 1)
  v = validate_upload(filename=file.filename, content_type=file.content_type, data=data, policy=policy)
  path = store_upload(data, extension=v.extension, subdir=subdir)
  return UploadOut(path=path, filename=v.filename, contentType=v.content_type, size=v.size)


@router.post("", response_model=UploadOut)
async def upload_document(file: UploadFile = File(...), user: User = Depends(get_current_user)) -> UploadOut:
  return await _accept(file, document_policy(), subdir="documents")


@router.post("/avatar", response_model=UploadOut)
async def upload_avatar(
  file: UploadFile = File(...),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> UploadOut:
  out = await _accept(file, avatar_policy(), subdir="avatars")
  user.avatar_url = f"/uploads/{out.path}"
  await write_audit(db, event_type="user.avatar.updated", entity_type="User", entity_id=user.id, actor_id=user.id, payload={"size": out.size})
  await db.commit()
  return out
