from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from worksuite.config import settings

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
  return bool((settings.smtp_host or "").strip() and (settings.smtp_from or "").strip())


async def send_email(*, to_addr: str, subject: str, body: str) -> None:
  host = (settings.smtp_host or "").strip()
  from_addr = (settings.smtp_from or "").strip()
  if not host or not from_addr or not to_addr:
    raise ValueError("SMTP missing host/from/to")
  port = int(settings.smtp_port)
  username = (settings.smtp_username or "").strip()
  password = settings.smtp_password or ""

  def _send_sync() -> None:
    m = EmailMessage()
    m["Subject"] = subject
    m["From"] = from_addr
    m["To"] = to_addr
    m.set_content(body)
    with smtplib.SMTP(host=host, port=port, timeout=15) as s:
      s.ehlo()
      if settings.smtp_starttls:
        s.starttls()
        s.ehlo()
      if username and password:
        s.login(username, password)
      s.send_message(m)

  await asyncio.to_thread(_send_sync)


async def send_password_reset_email(*, to_addr: str, reset_url: str) -> bool:
  """Best effort: returns False instead of raising when delivery fails."""
  if not smtp_configured():
    logger.warning("SMTP is not configured; password reset email not sent")
    return False
  body = (
    "A password reset was requested for your ProVision WorkSuite account.\n\n"
    f"Reset link: {reset_url}\n\n"
    "The link expires in one hour. If you did not request this, you can ignore this email."
  )
  try:
    await send_email(to_addr=to_addr, subject="Reset your password", body=body)
  except (smtplib.SMTPException, OSError, ValueError):
    logger.exception("Failed to send password reset email")
    return False
  return True
