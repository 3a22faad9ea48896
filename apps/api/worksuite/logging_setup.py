from __future__ import annotations

import json
import logging
import sys
from typing import Any, Literal

DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

REDACTED = "[REDACTED]"
SENSITIVE_KEYS = ("password", "token", "secret", "authorization", "cookie")

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RECORD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime", "taskName"}


def redact(value: Any, key: str = "") -> Any:
  if key and any(s in key.lower() for s in SENSITIVE_KEYS):
    return REDACTED
  if isinstance(value, dict):
    return {k: redact(v, str(k)) for k, v in value.items()}
  if isinstance(value, (list, tuple)):
    return [redact(v) for v in value]
  return value


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
  return {k: redact(v, k) for k, v in record.__dict__.items() if k not in _RECORD_ATTRS and not k.startswith("_")}


class JSONFormatter(logging.Formatter):
  """One JSON object per line; `extra` fields are included with sensitive keys redacted."""

  def __init__(self) -> None:
    super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

  def format(self, record: logging.LogRecord) -> str:
    entry: dict[str, Any] = {
      "timestamp": self.formatTime(record, self.datefmt),
      "level": record.levelname,
      "logger": record.name,
      "message": record.getMessage(),
    }
    entry.update(record_extras(record))
    if record.exc_info and record.exc_info[0] is not None:
      entry["exception"] = self.formatException(record.exc_info)
    return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
  def __init__(self) -> None:
    super().__init__(fmt=DEV_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

  def format(self, record: logging.LogRecord) -> str:
    line = super().format(record)
    extras = record_extras(record)
    if extras:
      line += " | " + " ".join(f"{k}={v}" for k, v in extras.items())
    return line


def setup_logging(level: str = "INFO", format_type: Literal["structured", "dev"] | str = "dev") -> None:
  handler = logging.StreamHandler(sys.stdout)
  handler.setFormatter(JSONFormatter() if format_type == "structured" else DevFormatter())
  logging.root.handlers = [handler]
  logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))

  for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(name).setLevel(logging.WARNING)
  logging.getLogger("sqlalchemy.engine").setLevel(logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING)

  logging.getLogger("worksuite").info("Logging configured: level=%s, format=%s", level, format_type)
