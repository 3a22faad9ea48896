from __future__ import annotations

import os
import sys
import tempfile
from functools import lru_cache
from pathlib import Path

import pytest
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_TMP = Path(tempfile.mkdtemp(prefix="worksuite_test_"))
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP / 'worksuite_test.db'}"
os.environ["JWT_SECRET"] = "test-jwt-secret-" + "x" * 40
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode("utf-8")
os.environ["REDIS_URL"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["DEV_EMAIL_CAPTURE"] = "false"

from worksuite.config import settings  # noqa: E402
from worksuite.db import SessionLocal, engine  # noqa: E402
from worksuite.main import app  # noqa: E402
from worksuite.models import Base, User  # noqa: E402
from worksuite.rate_limit import limiter  # noqa: E402
from worksuite.security import hash_password  # noqa: E402
from worksuite.totp import totp_code  # noqa: E402

ADMIN_EMAIL = "admin@worksuite.local"
ADMIN_PASSWORD = "Admin1234"
MEMBER_EMAIL = "member@worksuite.local"
MEMBER_PASSWORD = "Member1234"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@lru_cache(maxsize=None)
def _password_hash(password: str) -> str:
  return hash_password(password)


async def _reset_db() -> None:
  await limiter.reset_prefix("")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    db.add_all(
      [
        User(email=ADMIN_EMAIL, name="Admin", role="admin", password_hash=_password_hash(ADMIN_PASSWORD)),
        User(email=MEMBER_EMAIL, name="Member", role="member", password_hash=_password_hash(MEMBER_PASSWORD)),
      ]
    )
    await db.commit()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError("Refusing to run destructive tests against a non-test database.")
  await _reset_db()
  yield
  await limiter.reset_prefix("")


def make_client() -> AsyncClient:
  return AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost")


@pytest.fixture
async def client() -> AsyncClient:
  async with make_client() as c:
    yield c


async def login(client: AsyncClient, email: str, password: str, *, code: str | None = None, useBackupCode: bool = False) -> dict:
  payload: dict = {"email": email, "password": password}
  if code:
    payload["code"] = code
    payload["useBackupCode"] = useBackupCode
  res = await client.post("/api/auth/login", json=payload)
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie") or ""
  assert "auth-token=" in cookie and "csrf-token=" in cookie
  return res.json()


def csrf_headers(client: AsyncClient) -> dict[str, str]:
  token = client.cookies.get("csrf-token")
  assert token, "no csrf cookie on client"
  return {"x-csrf-token": token}


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one().id


async def enable_two_factor(client: AsyncClient) -> dict:
  # Assumes the client is logged in.
  setup = await client.post("/api/auth/2fa/setup", headers=csrf_headers(client))
  assert setup.status_code == 200, setup.text
  secret = setup.json()["secret"]
  confirm = await client.post("/api/auth/2fa/verify-setup", json={"code": totp_code(secret)}, headers=csrf_headers(client))
  assert confirm.status_code == 200, confirm.text
  return {"secret": secret, "backupCodes": confirm.json()["backupCodes"]}
