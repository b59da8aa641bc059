"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from litreview.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_BROKER_PROVIDERS = {"postgres", "memory"}
_LLM_PROVIDERS = {"openai"}
_EMAIL_PROVIDERS = {"mailersend", "null"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the literature review service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  broker_provider: str
  dispatch_timeout_seconds: float
  worker_concurrency: int
  worker_poll_interval_seconds: float
  worker_lease_seconds: int
  llm_provider: str
  llm_model: str
  openai_api_key: str | None
  openai_base_url: str | None
  llm_timeout_seconds: float
  default_credit_multiplier: float
  email_notifications_enabled: bool
  email_provider: str
  email_from_address: str | None
  email_from_name: str | None
  mailersend_api_key: str | None
  mailersend_timeout_seconds: int
  mailersend_base_url: str
  frontend_url: str | None
  admin_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
  if "*" in origins:
    raise ValueError("LITREVIEW_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("LITREVIEW_ENV", "development").lower()
  debug = _parse_bool(os.getenv("LITREVIEW_DEBUG"))
  allowed_origins = _parse_origins(os.getenv("LITREVIEW_ALLOWED_ORIGINS"))

  log_dir = (os.getenv("LITREVIEW_LOG_DIR") or "logs").strip()
  log_max_bytes = _positive_int("LITREVIEW_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("LITREVIEW_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("LITREVIEW_LOG_BACKUP_COUNT must be zero or a positive integer.")
  # Allow opt-in logging of 4xx errors for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("LITREVIEW_LOG_HTTP_4XX"))

  pg_dsn = _optional_str(os.getenv("LITREVIEW_PG_DSN"))

  broker_provider = (os.getenv("LITREVIEW_BROKER_PROVIDER") or "postgres").strip().lower()
  if broker_provider not in _BROKER_PROVIDERS:
    raise ValueError(f"LITREVIEW_BROKER_PROVIDER must be one of {sorted(_BROKER_PROVIDERS)}.")
  # Broker calls from the request path fail fast instead of hanging the request.
  dispatch_timeout_seconds = _positive_float("LITREVIEW_DISPATCH_TIMEOUT_SECONDS", "5")

  worker_concurrency = _positive_int("LITREVIEW_WORKER_CONCURRENCY", "2")
  worker_poll_interval_seconds = _positive_float("LITREVIEW_WORKER_POLL_INTERVAL_SECONDS", "1.0")
  worker_lease_seconds = _positive_int("LITREVIEW_WORKER_LEASE_SECONDS", "300")

  llm_provider = (os.getenv("LITREVIEW_LLM_PROVIDER") or "openai").strip().lower()
  if llm_provider not in _LLM_PROVIDERS:
    raise ValueError(f"LITREVIEW_LLM_PROVIDER must be one of {sorted(_LLM_PROVIDERS)}.")
  llm_model = (os.getenv("LITREVIEW_LLM_MODEL") or "gpt-4o-mini").strip()
  openai_api_key = _optional_str(os.getenv("LITREVIEW_OPENAI_API_KEY"))
  openai_base_url = _optional_str(os.getenv("LITREVIEW_OPENAI_BASE_URL"))
  llm_timeout_seconds = _positive_float("LITREVIEW_LLM_TIMEOUT_SECONDS", "60")

  # Used only when no active multiplier row exists in the database.
  default_credit_multiplier = _positive_float("LITREVIEW_DEFAULT_CREDIT_MULTIPLIER", "100.0")

  email_notifications_enabled = _parse_bool(os.getenv("LITREVIEW_EMAIL_NOTIFICATIONS_ENABLED"))
  email_provider = (os.getenv("LITREVIEW_EMAIL_PROVIDER") or "mailersend").strip().lower()
  if email_provider not in _EMAIL_PROVIDERS:
    raise ValueError(f"LITREVIEW_EMAIL_PROVIDER must be one of {sorted(_EMAIL_PROVIDERS)}.")
  email_from_address = _optional_str(os.getenv("LITREVIEW_EMAIL_FROM_ADDRESS"))
  email_from_name = _optional_str(os.getenv("LITREVIEW_EMAIL_FROM_NAME"))
  mailersend_api_key = _optional_str(os.getenv("LITREVIEW_MAILERSEND_API_KEY"))
  mailersend_timeout_seconds = _positive_int("LITREVIEW_MAILERSEND_TIMEOUT_SECONDS", "10")
  mailersend_base_url = (os.getenv("LITREVIEW_MAILERSEND_BASE_URL") or "https://api.mailersend.com/v1").strip()
  if email_notifications_enabled and email_provider == "mailersend" and (not mailersend_api_key or not email_from_address):
    raise ValueError("LITREVIEW_MAILERSEND_API_KEY and LITREVIEW_EMAIL_FROM_ADDRESS are required when email notifications are enabled.")

  frontend_url = _optional_str(os.getenv("LITREVIEW_FRONTEND_URL"))
  admin_secret = _optional_str(os.getenv("LITREVIEW_ADMIN_SECRET"))

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=allowed_origins,
    log_dir=log_dir,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=pg_dsn,
    broker_provider=broker_provider,
    dispatch_timeout_seconds=dispatch_timeout_seconds,
    worker_concurrency=worker_concurrency,
    worker_poll_interval_seconds=worker_poll_interval_seconds,
    worker_lease_seconds=worker_lease_seconds,
    llm_provider=llm_provider,
    llm_model=llm_model,
    openai_api_key=openai_api_key,
    openai_base_url=openai_base_url,
    llm_timeout_seconds=llm_timeout_seconds,
    default_credit_multiplier=default_credit_multiplier,
    email_notifications_enabled=email_notifications_enabled,
    email_provider=email_provider,
    email_from_address=email_from_address,
    email_from_name=email_from_name,
    mailersend_api_key=mailersend_api_key,
    mailersend_timeout_seconds=mailersend_timeout_seconds,
    mailersend_base_url=mailersend_base_url,
    frontend_url=frontend_url,
    admin_secret=admin_secret,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the full service configuration."""

  return DatabaseSettings(debug=_parse_bool(os.getenv("LITREVIEW_DEBUG")), pg_dsn=_optional_str(os.getenv("LITREVIEW_PG_DSN")))
