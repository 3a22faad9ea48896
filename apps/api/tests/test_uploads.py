from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import MEMBER_EMAIL, MEMBER_PASSWORD, csrf_headers, login
from worksuite.errors import ValidationError
from worksuite.uploads import UploadPolicy, avatar_policy, document_policy, sanitize_filename, validate_upload

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n" + b"0" * 32


@pytest.mark.anyio
async def test_accepts_matching_content() -> None:
  v = validate_upload(filename="me.png", content_type="image/png", data=PNG, policy=avatar_policy())
  assert v.extension == "png" and v.size == len(PNG)
  v = validate_upload(filename="report.pdf", content_type="application/pdf", data=PDF, policy=document_policy())
  assert v.content_type == "application/pdf"
  v = validate_upload(filename="data.csv", content_type="text/csv; charset=utf-8", data=b"a,b\n1,2\n", policy=document_policy())
  assert v.content_type == "text/csv"


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("filename", "content_type", "data", "message"),
  [
    ("me.png", "image/png", b"", "File is empty"),
    ("me.gif", "image/gif", b"GIF89a" + b"\x00" * 8, "Invalid file type: image/gif"),
    ("me.jpg", "image/png", PNG, "File extension does not match MIME type"),
    ("../me.png", "image/png", PNG, "Invalid filename"),
    ("me.png", "image/png", b"<svg onload=alert(1)>", "File content does not match its declared type"),
  ],
)
async def test_rejects_bad_avatar(filename: str, content_type: str, data: bytes, message: str) -> None:
  with pytest.raises(ValidationError) as exc:
    validate_upload(filename=filename, content_type=content_type, data=data, policy=avatar_policy())
  assert exc.value.detail == message


@pytest.mark.anyio
async def test_rejects_oversized_and_binary_text() -> None:
  tiny = UploadPolicy("tiny", 8, ("image/png",))
  with pytest.raises(ValidationError):
    validate_upload(filename="a.png", content_type="image/png", data=PNG, policy=tiny)
  with pytest.raises(ValidationError):
    validate_upload(filename="a.txt", content_type="text/plain", data=b"abc\x00def", policy=document_policy())


@pytest.mark.anyio
async def test_sanitize_filename() -> None:
  assert sanitize_filename("my report (final).pdf") == "my_report__final_.pdf"
  assert sanitize_filename("...hidden..txt") == "hidden.txt"
  assert len(sanitize_filename("a" * 400)) == 255


@pytest.mark.anyio
async def test_avatar_upload_endpoint(client: AsyncClient) -> None:
  await login(client, MEMBER_EMAIL, MEMBER_PASSWORD)
  res = await client.post("/api/uploads/avatar", files={"file": ("me.png", PNG, "image/png")}, headers=csrf_headers(client))
  assert res.status_code == 200, res.text
  assert res.json()["path"].startswith("avatars/")
  me = await client.get("/api/auth/me")
  assert me.json()["avatarUrl"] == "/uploads/" + res.json()["path"]

  bad = await client.post("/api/uploads/avatar", files={"file": ("me.png", b"not an image", "image/png")}, headers=csrf_headers(client))
  assert bad.status_code == 400, bad.text


@pytest.mark.anyio
async def test_document_upload_requires_csrf(client: AsyncClient) -> None:
  await login(client, MEMBER_EMAIL, MEMBER_PASSWORD)
  res = await client.post("/api/uploads", files={"file": ("r.pdf", PDF, "application/pdf")})
  assert res.status_code == 403
  res = await client.post("/api/uploads", files={"file": ("r.pdf", PDF, "application/pdf")}, headers=csrf_headers(client))
  assert res.status_code == 200, res.text
  assert res.json()["filename"] == "r.pdf"
