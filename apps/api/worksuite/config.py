from __future__ import annotations

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_SECRETS = {"", "change-me", "dev-secret-change-me", "replace_with_strong_random_secret"}
PLACEHOLDER_KEYS = {"", "REPLACE_WITH_FERNET_KEY", "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA="}

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  environment: str = "development"  # development | test | production
  app_version: str = "0.1.0"
  api_docs_enabled: bool = True

  database_url: str = "postgresql+asyncpg://worksuite:worksuite@db:5432/worksuite"
  db_echo: bool = False

  jwt_secret: str = ""
  jwt_algorithm: str = "HS256"
  token_ttl_hours: int = 24
  encryption_key: str = ""

  cookie_secure: bool | None = None
  cookie_domain: str | None = None
  csrf_ttl_hours: int = 24
  trust_proxy_headers: bool = False

  redis_url: str | None = None
  rate_limit_login_max: int = 5
  rate_limit_login_window_seconds: int = 15 * 60
  rate_limit_signup_max: int = 3
  rate_limit_signup_window_seconds: int = 60 * 60
  rate_limit_api_max: int = 100
  rate_limit_api_window_seconds: int = 60
  rate_limit_api_enabled: bool = True
  rate_limit_password_reset_max: int = 3
  rate_limit_password_reset_window_seconds: int = 60 * 60

  password_reset_ttl_minutes: int = 60
  backup_code_count: int = 10
  totp_issuer: str = "ProVision WorkSuite"
  app_url: str = "http://localhost:3000"

  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_username: str | None = None
  smtp_password: str | None = None
  smtp_from: str | None = None
  smtp_starttls: bool = True
  dev_email_capture: bool = False

  upload_dir: str = "data/uploads"
  max_upload_bytes: int = 10 * 1024 * 1024
  max_avatar_bytes: int = 2 * 1024 * 1024
  max_document_bytes: int = 50 * 1024 * 1024

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  trusted_hosts: str = "localhost,127.0.0.1,api,web"

  log_level: str = "INFO"
  log_format: str = "dev"  # dev | structured

  @property
  def is_production(self) -> bool:
    return self.environment.strip().lower() == "production"

  @property
  def secure_cookies(self) -> bool:
    if self.cookie_secure is None:
      return self.is_production
    return bool(self.cookie_secure)

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]


def security_config_problems(s: Settings) -> list[str]:
  """Return human readable problems with the secrets this service cannot run without."""
  problems: list[str] = []
  if (s.jwt_secret or "").strip() in PLACEHOLDER_SECRETS:
    problems.append("JWT_SECRET is required and must not be a placeholder")
  elif len(s.jwt_secret.strip()) < 32:
    problems.append("JWT_SECRET should be at least 32 characters")
  if (s.encryption_key or "").strip() in PLACEHOLDER_KEYS:
    problems.append("ENCRYPTION_KEY is required and must not be a placeholder")
  if s.is_production and s.cookie_secure is False:
    problems.append("COOKIE_SECURE must not be disabled in production")
  return problems


settings = Settings()


def verify_security_config(s: Settings) -> list[str]:
  """Log every problem; refuse to continue in production."""
  problems = security_config_problems(s)
  for p in problems:
    logger.critical("Security configuration: %s", p)
  if problems and s.is_production:
    raise RuntimeError("Refusing to start: " + "; ".join(problems))
  return problems
