"""Gemini text provider using the google-genai SDK."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final

from google import genai

from app.ai.backoff import retry_with_backoff
from app.ai.providers.base import AIModel, Provider, SimpleModelResponse, StructuredModelResponse

logger = logging.getLogger(__name__)


def _usage_dict(usage_metadata: Any) -> dict[str, int] | None:
  if usage_metadata is None:
    return None
  return {"prompt_tokens": usage_metadata.prompt_token_count or 0, "completion_tokens": usage_metadata.candidates_token_count or 0, "total_tokens": usage_metadata.total_token_count or 0}


class GeminiModel(AIModel):
  """Gemini model client."""

  def __init__(self, name: str, api_key: str | None = None) -> None:
    self.name: str = name

    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")

    self._client = genai.Client(api_key=api_key)

  def _config(self, *, system: str | None, max_tokens: int | None, temperature: float | None, json_mode: bool = False) -> dict[str, Any]:
    # Plain dict config keeps the call independent of SDK type churn.
    config: dict[str, Any] = {}
    if system:
      config["system_instruction"] = system
    if max_tokens is not None:
      config["max_output_tokens"] = max_tokens
    if temperature is not None:
      config["temperature"] = temperature
    if json_mode:
      config["response_mime_type"] = "application/json"
    return config

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> SimpleModelResponse:
    """Generate text response from Gemini."""
    config = self._config(system=system, max_tokens=max_tokens, temperature=temperature)
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=config)
    content = response.text or ""
    logger.debug("Gemini response (%d chars):\n%s", len(content), content)
    return SimpleModelResponse(content=content, usage=_usage_dict(response.usage_metadata))

  async def generate_json(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> StructuredModelResponse:
    """Generate a JSON object using Gemini's JSON mime type."""
    config = self._config(system=system, max_tokens=max_tokens, temperature=temperature, json_mode=True)
    response = await retry_with_backoff(self._client.aio.models.generate_content, model=self.name, contents=prompt, config=config)
    content = response.text or ""
    logger.debug("Gemini structured response (raw):\n%s", content)
    try:
      parsed = json.loads(self.strip_json_fences(content))
    except json.JSONDecodeError as e:
      raise RuntimeError(f"Gemini returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
      raise RuntimeError("Gemini returned JSON that is not an object.")
    return StructuredModelResponse(content=parsed, usage=_usage_dict(response.usage_metadata))


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.0-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.0-flash", "gemini-2.5-flash", "gemini-2.5-pro"}

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, api_key=self._api_key)
