#!/usr/bin/env python3
from __future__ import annotations

import secrets

from cryptography.fernet import Fernet


def main() -> int:
  print("Generated secrets for .env:")
  print()
  print(f'JWT_SECRET="{secrets.token_hex(32)}"')
  print(f'ENCRYPTION_KEY="{Fernet.generate_key().decode("utf-8")}"')
  print()
  print("ENCRYPTION_KEY protects stored 2FA secrets; rotating it invalidates every enrolled authenticator.")
  return 0


if __name__ == "__main__":
  raise SystemExit(main())
