"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from barbuddy.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the BarBuddy service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  anthropic_api_key: str | None
  anthropic_base_url: str
  primary_model: str
  fallback_model: str
  provider_timeout_seconds: float
  storage_path: Path
  persistent_storage: bool
  db_dsn: str | None
  log_max_bytes: int
  log_backup_count: int
  job_delay_seconds: float
  job_retention_seconds: float
  topic_delay_seconds: float


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  cleaned = raw.strip()
  return cleaned or None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("BARBUDDY_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _positive_float(name: str, default: str, *, allow_zero: bool = True) -> float:
  raw = os.getenv(name, default)
  try:
    value = float(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be a number.") from exc
  if value < 0 or (value == 0 and not allow_zero):
    raise ValueError(f"{name} must be a positive number.")
  return value


def _positive_int(name: str, default: str, *, allow_zero: bool = False) -> int:
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc
  if value < 0 or (value == 0 and not allow_zero):
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("BARBUDDY_ENV", "development").lower()
  debug = _parse_bool(os.getenv("BARBUDDY_DEBUG"))

  # A mounted volume keeps the knowledge base alive across redeploys.
  storage_root = _optional_str(os.getenv("BARBUDDY_STORAGE_PATH"))
  storage_path = Path(storage_root) / "uploads" if storage_root else Path("./uploads")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("BARBUDDY_ALLOWED_ORIGINS")),
    anthropic_api_key=_optional_str(os.getenv("ANTHROPIC_API_KEY")),
    anthropic_base_url=(os.getenv("BARBUDDY_ANTHROPIC_BASE_URL") or "https://api.anthropic.com").strip().rstrip("/"),
    primary_model=(os.getenv("BARBUDDY_PRIMARY_MODEL") or "claude-sonnet-4-20250514").strip(),
    fallback_model=(os.getenv("BARBUDDY_FALLBACK_MODEL") or "claude-haiku-4-5-20251001").strip(),
    provider_timeout_seconds=_positive_float("BARBUDDY_PROVIDER_TIMEOUT_SECONDS", "120", allow_zero=False),
    storage_path=storage_path,
    persistent_storage=storage_root is not None,
    db_dsn=_optional_str(os.getenv("BARBUDDY_DB_DSN")),
    log_max_bytes=_positive_int("BARBUDDY_LOG_MAX_BYTES", "5242880"),
    log_backup_count=_positive_int("BARBUDDY_LOG_BACKUP_COUNT", "10", allow_zero=True),
    job_delay_seconds=_positive_float("BARBUDDY_JOB_DELAY_SECONDS", "3"),
    job_retention_seconds=_positive_float("BARBUDDY_JOB_RETENTION_SECONDS", "1800"),
    topic_delay_seconds=_positive_float("BARBUDDY_TOPIC_DELAY_SECONDS", "0.6"),
  )
