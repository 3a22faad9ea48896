#!/usr/bin/env python3
from __future__ import annotations

from cryptography.fernet import Fernet

from worksuite.config import Settings, security_config_problems


def fernet_key_ok(key: str) -> bool:
  try:
    Fernet(key.strip().encode("utf-8"))
  except (ValueError, TypeError):
    return False
  return True


def main() -> int:
  s = Settings()
  problems = security_config_problems(s)
  if s.encryption_key and not fernet_key_ok(s.encryption_key):
    problems.append("ENCRYPTION_KEY is not a valid Fernet key")

  print("Environment Check")
  print("=================")
  print(f"environment: {s.environment}")
  print(f"database: {s.database_url.split('://', 1)[0]}")
  print(f"rate limit store: {'redis' if s.redis_url else 'memory'}")
  print(f"smtp: {'configured' if s.smtp_host else 'not configured'}")
  print(f"secure cookies: {s.secure_cookies}")

  if problems:
    for p in problems:
      print(f"FAIL: {p}")
    return 1
  print("PASS")
  return 0


if __name__ == "__main__":
  raise SystemExit(main())
