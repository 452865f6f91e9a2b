"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from scenario_queue.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_DEV_ENVIRONMENTS = frozenset({"development", "dev", "local", "test"})


@dataclass(frozen=True)
class Settings:
  """Typed settings for the scenario queue service."""

  environment: str
  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  cron_secret: str | None
  openai_api_key: str | None
  openai_model: str
  openai_base_url: str | None
  generation_timeout_seconds: float
  queue_max_attempts: int
  queue_default_limit: int
  queue_max_limit: int
  queue_stale_claim_seconds: int
  queue_retention_days: int

  @property
  def is_development(self) -> bool:
    return self.environment in _DEV_ENVIRONMENTS


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


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
  if value == "":
    return None
  return value


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

  environment = os.getenv("KAIWA_ENV", "production").strip().lower()
  debug = _parse_bool(os.getenv("KAIWA_DEBUG"))
  database = get_database_settings()

  log_max_bytes = _positive_int("KAIWA_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("KAIWA_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("KAIWA_LOG_BACKUP_COUNT must be zero or a positive integer.")

  queue_default_limit = _positive_int("KAIWA_QUEUE_DEFAULT_LIMIT", "5")
  queue_max_limit = _positive_int("KAIWA_QUEUE_MAX_LIMIT", "20")
  if queue_default_limit > queue_max_limit:
    raise ValueError("KAIWA_QUEUE_DEFAULT_LIMIT must not exceed KAIWA_QUEUE_MAX_LIMIT.")

  return Settings(
    environment=environment,
    debug=debug,
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    log_dir=_optional_str(os.getenv("KAIWA_LOG_DIR")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    cron_secret=_optional_str(os.getenv("KAIWA_CRON_SECRET")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    openai_model=(os.getenv("KAIWA_OPENAI_MODEL") or "gpt-4o-mini").strip(),
    openai_base_url=_optional_str(os.getenv("KAIWA_OPENAI_BASE_URL")),
    generation_timeout_seconds=_positive_float("KAIWA_GENERATION_TIMEOUT_SECONDS", "30"),
    queue_max_attempts=_positive_int("KAIWA_QUEUE_MAX_ATTEMPTS", "3"),
    queue_default_limit=queue_default_limit,
    queue_max_limit=queue_max_limit,
    queue_stale_claim_seconds=_positive_int("KAIWA_QUEUE_STALE_CLAIM_SECONDS", "600"),
    queue_retention_days=_positive_int("KAIWA_QUEUE_RETENTION_DAYS", "30"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the rest of the runtime configuration."""
  debug = _parse_bool(os.getenv("KAIWA_DEBUG"))
  pg_connect_timeout = _positive_int("KAIWA_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = _optional_str(os.getenv("KAIWA_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
