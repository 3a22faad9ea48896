from __future__ import annotations

import re

import pytest

from worksuite.totp import (
  backup_code_hash,
  backup_codes_generate,
  new_secret,
  provisioning_uri,
  qr_code_data_url,
  totp_code,
  totp_verify,
)

# RFC 6238 appendix B, SHA-1 seed "12345678901234567890"
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


@pytest.mark.anyio
async def test_rfc6238_vectors() -> None:
  assert totp_code(RFC_SECRET, now=59, digits=8) == "94287082"
  assert totp_code(RFC_SECRET, now=1111111109, digits=8) == "07081804"
  assert totp_code(RFC_SECRET, now=1234567890, digits=8) == "89005924"
  assert totp_code(RFC_SECRET, now=59) == "287082"


@pytest.mark.anyio
async def test_verify_accepts_adjacent_steps_only() -> None:
  t = 1_700_000_000
  code = totp_code(RFC_SECRET, now=t)
  assert totp_verify(RFC_SECRET, code, now=t)
  assert totp_verify(RFC_SECRET, code, now=t + 30)
  assert totp_verify(RFC_SECRET, code, now=t - 30)
  assert totp_verify(RFC_SECRET, f" {code[:3]} {code[3:]} ", now=t)


@pytest.mark.anyio
async def test_verify_rejects_malformed_codes() -> None:
  assert not totp_verify(RFC_SECRET, None)
  assert not totp_verify(RFC_SECRET, "")
  assert not totp_verify(RFC_SECRET, "abcdef")
  assert not totp_verify(RFC_SECRET, "12345")
  assert not totp_verify(RFC_SECRET, "1234567")


@pytest.mark.anyio
async def test_code_for_one_secret_does_not_validate_another() -> None:
  t = 1_700_000_000
  other = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
  assert not totp_verify(other, totp_code(RFC_SECRET, now=t), now=t)


@pytest.mark.anyio
async def test_new_secret_is_base32_160_bits() -> None:
  s = new_secret()
  assert re.fullmatch(r"[A-Z2-7]{32}", s)
  assert s != new_secret()


@pytest.mark.anyio
async def test_backup_codes_are_unique_and_normalized_for_hashing() -> None:
  codes = backup_codes_generate(10)
  assert len(codes) == 10 and len(set(codes)) == 10
  for c in codes:
    assert re.fullmatch(r"[0-9A-F]{4}-[0-9A-F]{4}", c)
  c = codes[0]
  assert backup_code_hash(c) == backup_code_hash(c.lower())
  assert backup_code_hash(c) == backup_code_hash(c.replace("-", ""))
  assert backup_code_hash(c) != backup_code_hash(codes[1])


@pytest.mark.anyio
async def test_provisioning_uri_and_qr_code() -> None:
  uri = provisioning_uri(RFC_SECRET, account="a@example.com", issuer="ProVision WorkSuite")
  assert uri.startswith("otpauth://totp/ProVision%20WorkSuite:a@example.com?")
  assert f"secret={RFC_SECRET}" in uri
  assert "issuer=ProVision+WorkSuite" in uri
  assert "digits=6" in uri and "period=30" in uri
  assert qr_code_data_url(uri).startswith("data:image/png;base64,")
