from __future__ import annotations

import base64
import hashlib
import hmac
import io
import secrets
import struct
import time
from urllib.parse import quote, urlencode

import qrcode

STEP_SECONDS = 30
DIGITS = 6


def new_secret() -> str:
  # 160-bit RFC 3548 base32 without padding
  return base64.b32encode(secrets.token_bytes(20)).decode("utf-8").replace("=", "")


def _counter(now: int | None = None, step_seconds: int = STEP_SECONDS) -> int:
  ts = int(now if now is not None else time.time())
  return ts // step_seconds


def totp_code(secret_b32: str, *, now: int | None = None, digits: int = DIGITS, step_seconds: int = STEP_SECONDS) -> str:
  # RFC 6238 (HMAC-SHA1)
  s = secret_b32.strip().upper()
  pad = "=" * ((8 - (len(s) % 8)) % 8)
  key = base64.b32decode((s + pad).encode("utf-8"))
  msg = struct.pack(">Q", _counter(now, step_seconds))
  digest = hmac.new(key, msg, hashlib.sha1).digest()
  offset = digest[-1] & 0x0F
  binary = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
  return str(binary % (10**digits)).zfill(digits)


def totp_verify(secret_b32: str, code: str | None, *, window: int = 1, now: int | None = None) -> bool:
  c = (code or "").strip().replace(" ", "")
  if len(c) != DIGITS or not c.isdigit():
    return False
  ts = int(now if now is not None else time.time())
  ok = False
  for w in range(-window, window + 1):
    # no early exit: every candidate step is compared
    if secrets.compare_digest(totp_code(secret_b32, now=ts + w * STEP_SECONDS), c):
      ok = True
  return ok


def provisioning_uri(secret_b32: str, *, account: str, issuer: str) -> str:
  label = quote(f"{issuer}:{account}", safe="@:")
  query = urlencode({"secret": secret_b32, "issuer": issuer, "algorithm": "SHA1", "digits": DIGITS, "period": STEP_SECONDS})
  return f"otpauth://totp/{label}?{query}"


def qr_code_data_url(data: str) -> str:
  qr = qrcode.QRCode(version=1, error_correction=qrcode.constants.ERROR_CORRECT_L, box_size=8, border=4)
  qr.add_data(data)
  qr.make(fit=True)
  img = qr.make_image(fill_color="black", back_color="white")
  buf = io.BytesIO()
  img.save(buf, format="PNG")
  return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def backup_codes_generate(n: int = 10) -> list[str]:
  # user-friendly codes, e.g. 3F9A-0C1D
  out: list[str] = []
  while len(out) < n:
    raw = secrets.token_hex(4).upper()
    code = f"{raw[:4]}-{raw[4:]}"
    if code not in out:
      out.append(code)
  return out


def backup_code_hash(code: str) -> str:
  normalized = (code or "").strip().upper().replace("-", "").replace(" ", "")
  return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
