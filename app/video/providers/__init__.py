"""Video provider adapters keyed by provider id."""

from __future__ import annotations

import httpx

from app.config import Settings
from app.video.providers.base import VideoProvider
from app.video.providers.grok import GrokVideoProvider
from app.video.providers.kling import KlingVideoProvider


def build_video_providers(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> dict[str, VideoProvider]:
  """Build every adapter from settings; the handle's provider id selects one."""
  grok = GrokVideoProvider(
    api_key=settings.grok_api_key,
    base_url=settings.grok_api_base_url,
    model=settings.grok_video_model,
    max_prompt_length=settings.grok_max_prompt_chars,
    request_timeout=settings.provider_request_timeout_seconds,
    submit_timeout=settings.provider_submit_timeout_seconds,
    transport=transport,
  )
  kling = KlingVideoProvider(
    api_key=settings.fal_key,
    queue_base_url=settings.fal_queue_base_url,
    app_root=settings.kling_app_root,
    text_endpoint=settings.kling_text_endpoint,
    image_endpoint=settings.kling_image_endpoint,
    max_prompt_length=settings.kling_max_prompt_chars,
    request_timeout=settings.provider_request_timeout_seconds,
    submit_timeout=settings.provider_submit_timeout_seconds,
    transport=transport,
  )
  return {grok.provider_id: grok, kling.provider_id: kling}


__all__ = ["GrokVideoProvider", "KlingVideoProvider", "VideoProvider", "build_video_providers"]
