from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from pathlib import Path

from worksuite.config import settings
from worksuite.errors import ValidationError

IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")
DOCUMENT_TYPES = (
  "application/pdf",
  "application/msword",
  "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
  "application/vnd.ms-excel",
  "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
  "text/plain",
  "text/csv",
)
AVATAR_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")

EXTENSIONS: dict[str, tuple[str, ...]] = {
  "image/jpeg": ("jpg", "jpeg"),
  "image/jpg": ("jpg", "jpeg"),
  "image/png": ("png",),
  "image/gif": ("gif",),
  "image/webp": ("webp",),
  "application/pdf": ("pdf",),
  "application/msword": ("doc",),
  "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ("docx",),
  "application/vnd.ms-excel": ("xls",),
  "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ("xlsx",),
  "text/plain": ("txt",),
  "text/csv": ("csv",),
}

_ZIP = b"PK\x03\x04"
_OLE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@dataclass(frozen=True)
class UploadPolicy:
  name: str
  max_bytes: int
  allowed_types: tuple[str, ...]


@dataclass(frozen=True)
class ValidatedUpload:
  filename: str
  content_type: str
  extension: str
  size: int


def avatar_policy() -> UploadPolicy:
  return UploadPolicy("avatar", int(settings.max_avatar_bytes), AVATAR_TYPES)


def document_policy() -> UploadPolicy:
  return UploadPolicy("document", int(settings.max_document_bytes), IMAGE_TYPES + DOCUMENT_TYPES)


def general_policy() -> UploadPolicy:
  return UploadPolicy("general", int(settings.max_upload_bytes), IMAGE_TYPES + DOCUMENT_TYPES)


def sanitize_filename(filename: str) -> str:
  name = re.sub(r"[^a-zA-Z0-9._-]", "_", filename or "")
  name = re.sub(r"\.+", ".", name)
  name = re.sub(r"^\.+", "", name)
  return name[:255]


def _looks_like_text(data: bytes) -> bool:
  if b"\x00" in data:
    return False
  try:
    data.decode("utf-8-sig")
  except UnicodeDecodeError:
    return False
  return True


def content_matches_type(data: bytes, content_type: str) -> bool:
  ct = content_type.lower()
  if ct in ("image/jpeg", "image/jpg"):
    return data.startswith(b"\xff\xd8\xff")
  if ct == "image/png":
    return data.startswith(b"\x89PNG\r\n\x1a\n")
  if ct == "image/gif":
    return data.startswith((b"GIF87a", b"GIF89a"))
  if ct == "image/webp":
    return data[:4] == b"RIFF" and data[8:12] == b"WEBP"
  if ct == "application/pdf":
    return data.startswith(b"%PDF-")
  if ct in ("application/msword", "application/vnd.ms-excel"):
    return data.startswith(_OLE)
  if ct.startswith("application/vnd.openxmlformats-officedocument."):
    return data.startswith(_ZIP)
  if ct in ("text/plain", "text/csv"):
    return _looks_like_text(data)
  return False


def validate_upload(*, filename: str | None, content_type: str | None, data: bytes, policy: UploadPolicy) -> ValidatedUpload:
  name = (filename or "").strip()
  if not name:
    raise ValidationError("No file provided")
  size = len(data)
  if size == 0:
    raise ValidationError("File is empty")
  if size > policy.max_bytes:
    raise ValidationError(f"File size exceeds {policy.max_bytes // (1024 * 1024)}MB limit")

  ct = (content_type or "").split(";", 1)[0].strip().lower()
  if ct not in policy.allowed_types:
    raise ValidationError(f"Invalid file type: {ct or 'unknown'}")
  if ".." in name or "/" in name or "\\" in name:
    raise ValidationError("Invalid filename")

  ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
  if ext not in EXTENSIONS.get(ct, ()):
    raise ValidationError("File extension does not match MIME type")
  if not content_matches_type(data, ct):
    raise ValidationError("File content does not match its declared type")
  return ValidatedUpload(filename=sanitize_filename(name), content_type=ct, extension=ext, size=size)


def store_upload(data: bytes, *, extension: str, subdir: str) -> str:
  """Write the bytes under UPLOAD_DIR with a random name; returns the relative path."""
  target_dir = Path(settings.upload_dir) / subdir
  target_dir.mkdir(parents=True, exist_ok=True)
  stored = f"{secrets.token_hex(16)}.{extension}"
  (target_dir / stored).write_bytes(data)
  return f"{subdir}/{stored}"
