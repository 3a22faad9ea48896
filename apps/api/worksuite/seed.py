from __future__ import annotations

import asyncio
import os
import secrets

from sqlalchemy import func, select

from worksuite.db import SessionLocal
from worksuite.models import User
from worksuite.security import hash_password


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14) + "Aa1", True


async def seed() -> list[str]:
  """Create the first administrator when the users table is empty."""
  boot_lines: list[str] = []
  async with SessionLocal() as db:
    count = await db.scalar(select(func.count()).select_from(User))
    if count:
      return boot_lines
    admin_email = (os.getenv("SEED_ADMIN_EMAIL") or "admin@worksuite.local").strip().lower()
    admin_password, generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    db.add(User(email=admin_email, name="Administrator", role="admin", password_hash=hash_password(admin_password)))
    await db.commit()
    boot_lines.append(f"{admin_email}={admin_password} (generated={str(generated).lower()})")
  return boot_lines


def main() -> None:
  for line in asyncio.run(seed()):
    print(f"bootstrap credentials: {line}")


if __name__ == "__main__":
  main()
