"""Text-completion providers used for prompt composition and condensing."""

from __future__ import annotations

import logging

from app.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse, StructuredModelResponse
from app.ai.providers.gemini import GeminiModel, GeminiProvider
from app.ai.providers.grok import GrokModel, GrokProvider
from app.config import Settings

logger = logging.getLogger(__name__)


def get_provider(settings: Settings) -> Provider:
  """Return the configured text provider."""
  if settings.text_provider == "gemini":
    return GeminiProvider(api_key=settings.gemini_api_key)
  return GrokProvider(api_key=settings.grok_api_key, base_url=settings.grok_api_base_url)


def build_text_model(settings: Settings) -> AIModel | None:
  """Return the configured text model, or None when its API key is missing."""
  try:
    return get_provider(settings).get_model(settings.text_model)
  except ValueError as exc:
    logger.warning("Text model unavailable (%s); composition and condensing are disabled.", exc)
    return None


__all__ = ["AIModel", "ModelResponse", "SimpleModelResponse", "StructuredModelResponse", "Provider", "GeminiModel", "GeminiProvider", "GrokModel", "GrokProvider", "build_text_model", "get_provider"]
