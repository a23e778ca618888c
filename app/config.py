"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_TEXT_PROVIDERS = {"grok", "gemini"}
_VIDEO_PROVIDERS = {"grok", "kling"}
_DEFAULT_MONTHLY_LIMITS: dict[str, int] = {"video": 10}
_DEFAULT_PROXY_DOMAINS = (".x.ai", ".xai.com", ".kwimgs.com", ".klingai.com", ".fal.media", ".fal.ai", ".fal.run")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Adreel service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int
  pg_dsn: str | None
  pg_connect_timeout: int
  usage_logging_enabled: bool
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  admin_emails: tuple[str, ...]
  text_provider: str
  text_model: str | None
  grok_api_key: str | None
  grok_api_base_url: str
  gemini_api_key: str | None
  fal_key: str | None
  default_video_provider: str
  grok_video_model: str
  fal_queue_base_url: str
  kling_app_root: str
  kling_text_endpoint: str
  kling_image_endpoint: str
  split_threshold_seconds: int
  compositor_max_chars: int
  grok_max_prompt_chars: int
  kling_max_prompt_chars: int
  poll_interval_seconds: float
  poll_max_attempts: int
  provider_request_timeout_seconds: float
  provider_submit_timeout_seconds: float
  rate_limit_requests: int
  rate_limit_window_seconds: int
  proxy_allowed_domains: tuple[str, ...]
  monthly_limits: dict[str, int] = field(hash=False)


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("ADREEL_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("ADREEL_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("ADREEL_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_csv(raw: str | None, default: tuple[str, ...] = ()) -> tuple[str, ...]:
  if raw is None or raw.strip() == "":
    return default
  return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


def _parse_json_dict(raw: str | None, default: dict[str, Any]) -> dict[str, Any]:
  if not raw:
    return default
  try:
    return json.loads(raw)
  except json.JSONDecodeError:
    return default


def _parse_monthly_limits(raw: str | None) -> dict[str, int]:
  """Merge operator overrides into the default per-kind monthly limits."""

  overrides = _parse_json_dict(raw, {})
  if not isinstance(overrides, dict):
    raise ValueError("ADREEL_MONTHLY_LIMITS must be a JSON object.")

  limits = dict(_DEFAULT_MONTHLY_LIMITS)
  for kind, value in overrides.items():
    try:
      limit = int(value)
    except (TypeError, ValueError) as exc:
      raise ValueError(f"ADREEL_MONTHLY_LIMITS[{kind!r}] must be an integer.") from exc

    # -1 means unlimited; anything else below zero is a typo.
    if limit < -1:
      raise ValueError(f"ADREEL_MONTHLY_LIMITS[{kind!r}] must be -1 or greater.")

    limits[str(kind)] = limit

  return limits


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


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

  environment = os.getenv("ADREEL_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("ADREEL_DEBUG"))

  log_max_bytes = _positive_int("ADREEL_LOG_MAX_BYTES", "5242880")  # 5MB default

  log_backup_count = int(os.getenv("ADREEL_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("ADREEL_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("ADREEL_LOG_HTTP_4XX"))
  # Allow opt-in logging of HTTP request/response bodies with a size cap.
  log_http_bodies = _parse_bool(os.getenv("ADREEL_LOG_HTTP_BODIES"))
  log_http_body_bytes = _positive_int("ADREEL_LOG_HTTP_BODY_BYTES", "2048")

  text_provider = (os.getenv("ADREEL_TEXT_PROVIDER") or "grok").strip().lower()
  if text_provider not in _TEXT_PROVIDERS:
    raise ValueError(f"ADREEL_TEXT_PROVIDER must be one of {sorted(_TEXT_PROVIDERS)}.")

  default_video_provider = (os.getenv("ADREEL_DEFAULT_VIDEO_PROVIDER") or "grok").strip().lower()
  if default_video_provider not in _VIDEO_PROVIDERS:
    raise ValueError(f"ADREEL_DEFAULT_VIDEO_PROVIDER must be one of {sorted(_VIDEO_PROVIDERS)}.")

  split_threshold_seconds = _positive_int("ADREEL_SPLIT_THRESHOLD_SECONDS", "25")
  compositor_max_chars = _positive_int("ADREEL_COMPOSITOR_MAX_CHARS", "3000")
  grok_max_prompt_chars = _positive_int("ADREEL_GROK_MAX_PROMPT_CHARS", "4000")
  kling_max_prompt_chars = _positive_int("ADREEL_KLING_MAX_PROMPT_CHARS", "3000")

  # 100 polls every 3 seconds gives callers roughly five minutes before giving up locally.
  poll_interval_seconds = _positive_float("ADREEL_POLL_INTERVAL_SECONDS", "3")
  poll_max_attempts = _positive_int("ADREEL_POLL_MAX_ATTEMPTS", "100")
  provider_request_timeout_seconds = _positive_float("ADREEL_PROVIDER_REQUEST_TIMEOUT_SECONDS", "15")
  provider_submit_timeout_seconds = _positive_float("ADREEL_PROVIDER_SUBMIT_TIMEOUT_SECONDS", "60")

  rate_limit_requests = _positive_int("ADREEL_RATE_LIMIT_REQUESTS", "20")
  rate_limit_window_seconds = _positive_int("ADREEL_RATE_LIMIT_WINDOW_SECONDS", "60")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("ADREEL_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    log_http_bodies=log_http_bodies,
    log_http_body_bytes=log_http_body_bytes,
    pg_dsn=os.getenv("ADREEL_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("ADREEL_PG_CONNECT_TIMEOUT", "5"),
    usage_logging_enabled=_parse_bool(os.getenv("ADREEL_USAGE_LOGGING_ENABLED", "true")),
    firebase_project_id=os.getenv("FIREBASE_PROJECT_ID"),
    firebase_service_account_json_path=os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH"),
    admin_emails=_parse_csv(os.getenv("ADREEL_ADMIN_EMAILS")),
    text_provider=text_provider,
    text_model=_optional_str(os.getenv("ADREEL_TEXT_MODEL")),
    grok_api_key=_optional_str(os.getenv("GROK_API_KEY")),
    grok_api_base_url=(os.getenv("ADREEL_GROK_API_BASE_URL") or "https://api.x.ai/v1").strip().rstrip("/"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    fal_key=_optional_str(os.getenv("FAL_KEY")),
    default_video_provider=default_video_provider,
    grok_video_model=(os.getenv("ADREEL_GROK_VIDEO_MODEL") or "grok-2-video").strip(),
    fal_queue_base_url=(os.getenv("ADREEL_FAL_QUEUE_BASE_URL") or "https://queue.fal.run").strip().rstrip("/"),
    kling_app_root=(os.getenv("ADREEL_KLING_APP_ROOT") or "fal-ai/kling-video").strip().strip("/"),
    kling_text_endpoint=(os.getenv("ADREEL_KLING_TEXT_ENDPOINT") or "fal-ai/kling-video/v2.6/pro/text-to-video").strip().strip("/"),
    kling_image_endpoint=(os.getenv("ADREEL_KLING_IMAGE_ENDPOINT") or "fal-ai/kling-video/v2.6/pro/image-to-video").strip().strip("/"),
    split_threshold_seconds=split_threshold_seconds,
    compositor_max_chars=compositor_max_chars,
    grok_max_prompt_chars=grok_max_prompt_chars,
    kling_max_prompt_chars=kling_max_prompt_chars,
    poll_interval_seconds=poll_interval_seconds,
    poll_max_attempts=poll_max_attempts,
    provider_request_timeout_seconds=provider_request_timeout_seconds,
    provider_submit_timeout_seconds=provider_submit_timeout_seconds,
    rate_limit_requests=rate_limit_requests,
    rate_limit_window_seconds=rate_limit_window_seconds,
    proxy_allowed_domains=_parse_csv(os.getenv("ADREEL_PROXY_ALLOWED_DOMAINS"), _DEFAULT_PROXY_DOMAINS),
    monthly_limits=_parse_monthly_limits(os.getenv("ADREEL_MONTHLY_LIMITS")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Migrations only need the DSN, so keep them independent of provider keys and origins.
  debug = _parse_bool(os.getenv("ADREEL_DEBUG"))
  pg_connect_timeout = _positive_int("ADREEL_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("ADREEL_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
