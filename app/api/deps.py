"""Shared FastAPI dependencies for auth, usage limits and the video pipeline."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.ai.ad_pipeline import AdPromptPipeline
from app.ai.compositor import PromptCompositor
from app.ai.fitter import PromptFitter
from app.ai.providers import AIModel, build_text_model
from app.config import Settings, get_settings
from app.core.database import get_db, get_session_factory
from app.core.security import AuthenticatedUser, get_current_user
from app.services.rate_limit import RateLimiter
from app.services.usage_guard import UNLIMITED, QuotaUsageGuard, UsageGuard
from app.services.videos import VideoGenerationService
from app.telemetry.usage_logger import UsageLogger, UsageRecorder
from app.video.providers import VideoProvider, build_video_providers

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _video_providers(settings: Settings) -> dict[str, VideoProvider]:
  return build_video_providers(settings)


@lru_cache(maxsize=4)
def _text_model(settings: Settings) -> AIModel | None:
  return build_text_model(settings)


@lru_cache(maxsize=1)
def get_usage_logger() -> UsageLogger:
  """Process-wide usage logger; drained at shutdown."""
  settings = get_settings()
  return UsageLogger(get_session_factory(), enabled=settings.usage_logging_enabled)


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
  settings = get_settings()
  return RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)


def get_video_providers(settings: Settings = Depends(get_settings)) -> dict[str, VideoProvider]:  # noqa: B008
  return _video_providers(settings)


def get_text_model(settings: Settings = Depends(get_settings)) -> AIModel | None:  # noqa: B008
  return _text_model(settings)


def get_usage_recorder() -> UsageRecorder:
  return get_usage_logger()


def get_compositor(settings: Settings = Depends(get_settings), text_model: AIModel | None = Depends(get_text_model)) -> PromptCompositor:  # noqa: B008
  return PromptCompositor(text_model, PromptFitter(text_model), split_threshold_seconds=settings.split_threshold_seconds, max_chars=settings.compositor_max_chars)


async def get_usage_guard(current_user: AuthenticatedUser = Depends(get_current_user), db: AsyncSession = Depends(get_db), settings: Settings = Depends(get_settings)) -> UsageGuard:  # noqa: B008
  """Monthly usage guard for the caller; admins are never limited."""
  if current_user.is_admin:
    return QuotaUsageGuard(db, {}, default_limit=UNLIMITED)
  return QuotaUsageGuard(db, settings.monthly_limits)


def get_video_service(
  settings: Settings = Depends(get_settings),  # noqa: B008
  providers: dict[str, VideoProvider] = Depends(get_video_providers),  # noqa: B008
  text_model: AIModel | None = Depends(get_text_model),  # noqa: B008
  compositor: PromptCompositor = Depends(get_compositor),  # noqa: B008
  usage_guard: UsageGuard = Depends(get_usage_guard),  # noqa: B008
  usage_recorder: UsageRecorder = Depends(get_usage_recorder),  # noqa: B008
) -> VideoGenerationService:
  return VideoGenerationService(
    providers=providers,
    fitter=PromptFitter(text_model),
    usage_guard=usage_guard,
    usage_logger=usage_recorder,
    compositor=compositor,
    default_provider=settings.default_video_provider,
  )


def get_poll_service(
  settings: Settings = Depends(get_settings),  # noqa: B008
  providers: dict[str, VideoProvider] = Depends(get_video_providers),  # noqa: B008
  usage_recorder: UsageRecorder = Depends(get_usage_recorder),  # noqa: B008
) -> VideoGenerationService:
  """Service for status checks only; polling never touches the usage store."""
  return VideoGenerationService(providers=providers, fitter=PromptFitter(None), usage_logger=usage_recorder, default_provider=settings.default_video_provider)


def get_ad_pipeline(text_model: AIModel | None = Depends(get_text_model), compositor: PromptCompositor = Depends(get_compositor)) -> AdPromptPipeline:  # noqa: B008
  if text_model is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Prompt building is not configured.")
  return AdPromptPipeline(text_model, compositor)


async def enforce_rate_limit(current_user: AuthenticatedUser = Depends(get_current_user), limiter: RateLimiter = Depends(get_rate_limiter)) -> AuthenticatedUser:  # noqa: B008
  """Per-user burst limit for expensive routes."""
  result = limiter.check(current_user.id)
  if not result.allowed:
    logger.warning("Rate limit exceeded user_id=%s reset_in=%ss", current_user.id, result.reset_in_seconds)
    raise HTTPException(
      status_code=status.HTTP_429_TOO_MANY_REQUESTS,
      detail="Too many requests. Please slow down.",
      headers={"Retry-After": str(result.reset_in_seconds), "X-RateLimit-Remaining": "0"},
    )
  return current_user
