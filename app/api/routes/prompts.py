from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.ai.ad_pipeline import AdPromptError, AdPromptPipeline
from app.ai.compositor import CompositionError
from app.api.deps import enforce_rate_limit, get_ad_pipeline, get_usage_recorder
from app.api.models import AdPromptRequest, AdPromptResponse
from app.core.security import AuthenticatedUser
from app.telemetry.usage_logger import UsageEvent, UsageRecorder, estimate_tokens

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/ad", response_model=AdPromptResponse)
async def build_ad_prompt(
  request: AdPromptRequest,
  current_user: AuthenticatedUser = Depends(enforce_rate_limit),  # noqa: B008
  pipeline: AdPromptPipeline = Depends(get_ad_pipeline),  # noqa: B008
  usage_recorder: UsageRecorder = Depends(get_usage_recorder),  # noqa: B008
) -> AdPromptResponse:
  """Turn a script and product description into one or two video prompts."""
  input_text = " ".join(filter(None, (request.script, request.product_context, request.product_photos_description)))
  try:
    result = await pipeline.build(script=request.script, duration_seconds=request.duration, product_context=request.product_context, product_photos_description=request.product_photos_description)
  except (AdPromptError, CompositionError) as exc:
    usage_recorder.record(UsageEvent(user_id=current_user.id, user_email=current_user.email, feature="ad_prompt_build", model=pipeline.model_name, success=False, error_message=str(exc), input_tokens=estimate_tokens(input_text)))
    raise

  usage = result.usage or {}
  output_text = " ".join((result.visual_identity, result.cinematic_breakdown, *result.composed.parts))
  usage_recorder.record(
    UsageEvent(
      user_id=current_user.id,
      user_email=current_user.email,
      feature="ad_prompt_build",
      model=pipeline.model_name,
      input_tokens=usage.get("prompt_tokens") or estimate_tokens(input_text),
      output_tokens=usage.get("completion_tokens") or estimate_tokens(output_text),
      metadata={"duration": request.duration, "is_split": result.composed.is_split},
    )
  )
  logger.info("Ad prompt built user_id=%s parts=%d", current_user.id, len(result.composed.parts))
  return AdPromptResponse.from_result(result)
