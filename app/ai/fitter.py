"""Keep generation prompts inside a provider's character budget."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from app.ai.prompts import CONDENSE_SYSTEM
from app.ai.providers.base import AIModel

logger = logging.getLogger(__name__)

FitStrategy = Literal["unchanged", "summarized", "truncated"]

# Ask the summarizer for a little less than the hard limit; models overshoot.
_TARGET_RATIO = 0.93
_CONDENSE_MAX_TOKENS = 900
_CONDENSE_TEMPERATURE = 0.2


@dataclass(frozen=True)
class FitResult:
  """Fitted prompt plus how it was produced."""

  text: str
  strategy: FitStrategy
  original_length: int
  usage: dict[str, int] | None = None


class PromptFitter:
  """Shrink prompts to a maximum length, summarizing first and truncating as a last resort.

  `fit` never raises. Any failure while summarizing degrades to a hard cut of the original prompt.
  """

  def __init__(self, model: AIModel | None) -> None:
    self._model = model

  @property
  def model_name(self) -> str | None:
    return self._model.name if self._model is not None else None

  async def fit(self, prompt: str, max_length: int) -> FitResult:
    original_length = len(prompt)
    if max_length < 1:
      return FitResult(text="", strategy="truncated", original_length=original_length)

    if original_length <= max_length:
      return FitResult(text=prompt, strategy="unchanged", original_length=original_length)

    if self._model is None:
      logger.info("No summarizer configured; truncating prompt from %d to %d chars", original_length, max_length)
      return FitResult(text=prompt[:max_length], strategy="truncated", original_length=original_length)

    target_chars = max(1, int(max_length * _TARGET_RATIO))
    try:
      response = await self._model.generate(prompt, system=CONDENSE_SYSTEM.format(target_chars=target_chars), max_tokens=_CONDENSE_MAX_TOKENS, temperature=_CONDENSE_TEMPERATURE)
    except Exception:  # noqa: BLE001
      logger.warning("Prompt condensing failed; truncating %d chars to %d", original_length, max_length, exc_info=True)
      return FitResult(text=prompt[:max_length], strategy="truncated", original_length=original_length)

    summary = (response.content or "").strip()
    if summary and len(summary) <= max_length:
      logger.info("Condensed prompt from %d to %d chars", original_length, len(summary))
      return FitResult(text=summary, strategy="summarized", original_length=original_length, usage=response.usage)

    logger.info("Condensed prompt still %d chars (limit %d); truncating", len(summary), max_length)
    return FitResult(text=(summary or prompt)[:max_length], strategy="truncated", original_length=original_length, usage=response.usage)
