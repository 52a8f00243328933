"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

StorageBackend = Literal["postgres", "memory"]


@dataclass(frozen=True)
class QueuePolicy:
  """Retry, timeout and pacing limits shared by the queue processor and the group runner."""

  max_retries: int = 3
  generation_timeout_seconds: float = 90.0
  stale_after_seconds: float = 120.0
  max_run_attempts: int = 50
  generation_delay_seconds: float = 1.0
  stale_processing_seconds: float = 900.0

  def __post_init__(self) -> None:
    if self.max_retries <= 0:
      raise ValueError("max_retries must be a positive integer.")
    if self.generation_timeout_seconds <= 0:
      raise ValueError("generation_timeout_seconds must be positive.")
    if self.stale_after_seconds <= 0:
      raise ValueError("stale_after_seconds must be positive.")
    if self.max_run_attempts <= 0:
      raise ValueError("max_run_attempts must be a positive integer.")
    if self.generation_delay_seconds < 0:
      raise ValueError("generation_delay_seconds must be zero or positive.")
    if self.stale_processing_seconds <= 0:
      raise ValueError("stale_processing_seconds must be positive.")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the pathgen service."""

  environment: str
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  storage_backend: StorageBackend
  pg_dsn: str | None
  pg_connect_timeout: int
  task_secret: str | None
  openrouter_api_key: str | None
  openrouter_base_url: str
  generation_model: str
  queue_default_limit: int
  queue_max_limit: int
  cleanup_after_days: int
  policy: QueuePolicy = field(default_factory=QueuePolicy)


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


def _parse_storage_backend(raw: str | None) -> StorageBackend:
  value = (raw or "postgres").strip().lower()
  if value not in {"postgres", "memory"}:
    raise ValueError("PATHGEN_STORAGE_BACKEND must be 'postgres' or 'memory'.")
  return value  # type: ignore[return-value]


def load_queue_policy() -> QueuePolicy:
  """Build the queue policy from PATHGEN_QUEUE_* overrides."""
  # QueuePolicy validates ranges, so a bad override fails at load time.
  return QueuePolicy(
    max_retries=int(os.getenv("PATHGEN_QUEUE_MAX_RETRIES", "3")),
    generation_timeout_seconds=float(os.getenv("PATHGEN_QUEUE_GENERATION_TIMEOUT_SECONDS", "90")),
    stale_after_seconds=float(os.getenv("PATHGEN_QUEUE_STALE_AFTER_SECONDS", "120")),
    max_run_attempts=int(os.getenv("PATHGEN_QUEUE_MAX_RUN_ATTEMPTS", "50")),
    generation_delay_seconds=float(os.getenv("PATHGEN_QUEUE_GENERATION_DELAY_SECONDS", "1")),
    stale_processing_seconds=float(os.getenv("PATHGEN_QUEUE_STALE_PROCESSING_SECONDS", "900")),
  )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("PATHGEN_ENV", "development").lower()

  # Toggle verbose SQL echo and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("PATHGEN_DEBUG"))

  log_dir = (os.getenv("PATHGEN_LOG_DIR") or "./logs").strip()
  log_max_bytes = int(os.getenv("PATHGEN_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("PATHGEN_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("PATHGEN_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("PATHGEN_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("PATHGEN_LOG_HTTP_4XX"))

  database = get_database_settings()

  queue_default_limit = int(os.getenv("PATHGEN_QUEUE_DEFAULT_LIMIT", "5"))
  queue_max_limit = int(os.getenv("PATHGEN_QUEUE_MAX_LIMIT", "20"))
  if queue_default_limit <= 0 or queue_max_limit < queue_default_limit:
    raise ValueError("PATHGEN_QUEUE_DEFAULT_LIMIT must be positive and not exceed PATHGEN_QUEUE_MAX_LIMIT.")

  cleanup_after_days = int(os.getenv("PATHGEN_QUEUE_CLEANUP_AFTER_DAYS", "30"))
  if cleanup_after_days <= 0:
    raise ValueError("PATHGEN_QUEUE_CLEANUP_AFTER_DAYS must be a positive integer.")

  return Settings(
    environment=environment,
    debug=debug,
    log_dir=log_dir,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    storage_backend=_parse_storage_backend(os.getenv("PATHGEN_STORAGE_BACKEND")),
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    task_secret=_optional_str(os.getenv("PATHGEN_TASK_SECRET")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    openrouter_base_url=(os.getenv("OPENROUTER_BASE_URL") or "https://openrouter.ai/api/v1").strip(),
    generation_model=(os.getenv("PATHGEN_GENERATION_MODEL") or "openai/gpt-oss-20b:free").strip(),
    queue_default_limit=queue_default_limit,
    queue_max_limit=queue_max_limit,
    cleanup_after_days=cleanup_after_days,
    policy=load_queue_policy(),
  )


def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring the web-runtime configuration."""
  # Keep database configuration isolated so offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("PATHGEN_DEBUG"))
  pg_connect_timeout = int(os.getenv("PATHGEN_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("PATHGEN_PG_CONNECT_TIMEOUT must be a positive integer.")

  # Support fallback to DATABASE_URL for hosted environments.
  pg_dsn = _optional_str(os.getenv("PATHGEN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
