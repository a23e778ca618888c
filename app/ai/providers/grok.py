"""xAI Grok text provider using the OpenAI-compatible API."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final

from openai import AsyncOpenAI

from app.ai.backoff import retry_with_backoff
from app.ai.providers.base import AIModel, Provider, SimpleModelResponse, StructuredModelResponse

logger = logging.getLogger(__name__)

_XAI_BASE_URL: Final[str] = "https://api.x.ai/v1"


def _usage_dict(usage: Any) -> dict[str, int] | None:
  if usage is None:
    return None
  return {"prompt_tokens": usage.prompt_tokens, "completion_tokens": usage.completion_tokens, "total_tokens": usage.total_tokens}


class GrokModel(AIModel):
  """Grok chat-completions client."""

  def __init__(self, name: str, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = name

    api_key = api_key or os.getenv("GROK_API_KEY")
    if not api_key:
      raise ValueError("GROK_API_KEY environment variable is required")

    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or _XAI_BASE_URL)

  def _messages(self, prompt: str, system: str | None) -> list[dict[str, str]]:
    messages = []
    if system:
      messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages

  async def _complete(self, prompt: str, *, system: str | None, max_tokens: int | None, temperature: float | None, **extra: Any) -> Any:
    params: dict[str, Any] = {"model": self.name, "messages": self._messages(prompt, system), **extra}
    if max_tokens is not None:
      params["max_tokens"] = max_tokens
    if temperature is not None:
      params["temperature"] = temperature
    return await retry_with_backoff(self._client.chat.completions.create, **params)

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> SimpleModelResponse:
    """Generate text response from Grok."""
    response = await self._complete(prompt, system=system, max_tokens=max_tokens, temperature=temperature)
    content = response.choices[0].message.content or ""
    logger.debug("Grok response (%d chars):\n%s", len(content), content)
    return SimpleModelResponse(content=content, usage=_usage_dict(response.usage))

  async def generate_json(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> StructuredModelResponse:
    """Generate a JSON object using Grok's JSON mode."""
    response = await self._complete(prompt, system=system, max_tokens=max_tokens, temperature=temperature, response_format={"type": "json_object"})
    content = response.choices[0].message.content or ""
    logger.debug("Grok structured response (raw):\n%s", content)
    try:
      parsed = json.loads(self.strip_json_fences(content))
    except json.JSONDecodeError as e:
      raise RuntimeError(f"Grok returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
      raise RuntimeError("Grok returned JSON that is not an object.")
    return StructuredModelResponse(content=parsed, usage=_usage_dict(response.usage))


class GrokProvider(Provider):
  """xAI Grok provider."""

  _DEFAULT_MODEL: Final[str] = "grok-3-mini"
  _AVAILABLE_MODELS: Final[set[str]] = {"grok-3-mini", "grok-3", "grok-4"}

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "grok"
    self._api_key = api_key
    self._base_url = base_url

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Grok model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Grok model '{model_name}'.")
    return GrokModel(model_name, api_key=self._api_key, base_url=self._base_url)
