"""Three-stage ad prompt builder: visual identity, shot list, then composition."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.ai.compositor import ComposedPrompt, PromptCompositor, merge_usage
from app.ai.prompts import CINEMATIC_BREAKDOWN_MESSAGE, CINEMATIC_BREAKDOWN_SYSTEM, VISUAL_IDENTITY_FROM_CONTEXT, VISUAL_IDENTITY_FROM_PHOTOS, VISUAL_IDENTITY_SYSTEM
from app.ai.providers.base import AIModel

logger = logging.getLogger(__name__)

_STAGE_TEMPERATURE = 0.4
_VISUAL_IDENTITY_MAX_TOKENS = 500
_BREAKDOWN_MAX_TOKENS = 1500


class AdPromptError(RuntimeError):
  """Raised when a pipeline stage fails."""

  def __init__(self, stage: str, message: str) -> None:
    super().__init__(f"{stage}: {message}")
    self.stage = stage


@dataclass(frozen=True)
class AdPromptResult:
  visual_identity: str
  cinematic_breakdown: str
  original_script: str
  duration_seconds: int
  composed: ComposedPrompt
  usage: dict[str, int] | None = None


class AdPromptPipeline:
  """Run the visual identity and shot list stages, then hand both to the compositor."""

  def __init__(self, model: AIModel, compositor: PromptCompositor) -> None:
    self._model = model
    self._compositor = compositor

  @property
  def model_name(self) -> str:
    return self._model.name

  async def _stage(self, stage: str, system: str, message: str, max_tokens: int) -> tuple[str, dict[str, int] | None]:
    try:
      response = await self._model.generate(message, system=system, max_tokens=max_tokens, temperature=_STAGE_TEMPERATURE)
    except Exception as exc:
      raise AdPromptError(stage, str(exc)) from exc
    content = (response.content or "").strip()
    if not content:
      raise AdPromptError(stage, "empty response from text model")
    logger.info("Ad prompt stage %s complete (%d chars)", stage, len(content))
    return content, response.usage

  async def build(self, *, script: str, duration_seconds: int, product_context: str | None = None, product_photos_description: str | None = None) -> AdPromptResult:
    script = script.strip()
    if not script:
      raise ValueError("Script is required.")

    # Photos win over free-text context; with neither the identity stage is skipped.
    identity_message = None
    if product_photos_description and product_photos_description.strip():
      identity_message = VISUAL_IDENTITY_FROM_PHOTOS.format(text=product_photos_description.strip())
    elif product_context and product_context.strip():
      identity_message = VISUAL_IDENTITY_FROM_CONTEXT.format(text=product_context.strip())

    visual_identity, identity_usage = "", None
    if identity_message is not None:
      visual_identity, identity_usage = await self._stage("visual_identity", VISUAL_IDENTITY_SYSTEM, identity_message, _VISUAL_IDENTITY_MAX_TOKENS)
    else:
      logger.info("Ad prompt has no product input; skipping visual_identity")

    # Shot list for the exact script.
    breakdown_message = CINEMATIC_BREAKDOWN_MESSAGE.format(script=script, duration=duration_seconds)
    breakdown, breakdown_usage = await self._stage("cinematic_breakdown", CINEMATIC_BREAKDOWN_SYSTEM, breakdown_message, _BREAKDOWN_MAX_TOKENS)

    # Without a visual identity the compositor returns the script as the prompt.
    # CompositionError propagates; there is no raw prompt to fall back to here.
    composed = await self._compositor.compose(visual_identity=visual_identity, cinematic_breakdown=breakdown, script=script, duration_seconds=duration_seconds, raw_prompt=script)
    return AdPromptResult(
      visual_identity=visual_identity,
      cinematic_breakdown=breakdown,
      original_script=script,
      duration_seconds=duration_seconds,
      composed=composed,
      usage=merge_usage(identity_usage, breakdown_usage, composed.usage),
    )
