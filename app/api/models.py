from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.ai.ad_pipeline import AdPromptResult
from app.services.videos import SubmissionReceipt
from app.video.models import GenerationRequest, JobStatus


class CamelModel(BaseModel):
  """Accept camelCase and snake_case keys; serialize camelCase."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class VideoGenerationRequest(CamelModel):
  """Request payload for submitting one video job."""

  prompt: StrictStr = Field(default="", max_length=20000, description="Raw prompt. Used verbatim when no composition happens.")
  provider: Literal["grok", "kling"] | None = Field(default=None, description="Video provider; defaults to the configured provider.")
  duration: float | None = Field(default=None, description="Target duration in seconds; snapped to the provider's supported range.")
  aspect_ratio: StrictStr | None = Field(default=None, max_length=16, description="Aspect ratio as 'w:h'; snapped to the nearest supported ratio.")
  resolution: StrictStr | None = Field(default=None, max_length=16, description="Grok quality tier (720p or 480p).")
  image_url: StrictStr | None = Field(default=None, max_length=4096, description="Reference image for image-to-video.")
  image_urls: list[StrictStr] | None = Field(default=None, max_length=8, description="Reference images; only the first is used.")
  negative_prompt: StrictStr | None = Field(default=None, max_length=2000)
  generate_audio: bool | None = Field(default=None, description="Kling only: generate a soundtrack.")
  cfg_scale: float | None = Field(default=None, description="Kling guidance strength, clamped to 0-1.")
  visual_identity: StrictStr | None = Field(default=None, description="Composition input: product visual identity.")
  cinematic_breakdown: StrictStr | None = Field(default=None, description="Composition input: shot-by-shot breakdown.")
  script: StrictStr | None = Field(default=None, description="Composition input: narration script.")
  composed_prompt: StrictStr | None = Field(default=None, description="Prompt already composed upstream; skips composition.")

  @model_validator(mode="after")
  def require_prompt(self) -> VideoGenerationRequest:
    if not self.prompt.strip() and not (self.composed_prompt or "").strip():
      raise ValueError("Either prompt or composedPrompt is required.")
    return self

  def to_generation_request(self) -> GenerationRequest:
    image_url = self.image_url or next(iter(self.image_urls or []), None)
    return GenerationRequest(
      prompt=self.prompt,
      duration_seconds=self.duration,
      aspect_ratio=self.aspect_ratio,
      resolution=self.resolution,
      image_url=image_url,
      negative_prompt=self.negative_prompt,
      generate_audio=self.generate_audio,
      cfg_scale=self.cfg_scale,
      visual_identity=self.visual_identity,
      cinematic_breakdown=self.cinematic_breakdown,
      script=self.script,
      composed_prompt=self.composed_prompt,
    )


class VideoSubmissionResponse(CamelModel):
  job_handle: str
  provider: str
  normalized_parameters: dict[str, Any]
  prompt_length: int
  fit_strategy: Literal["unchanged", "summarized", "truncated"]
  composed: bool
  follow_up_prompts: list[str] = Field(default_factory=list)
  continuity_anchor: str | None = None

  @classmethod
  def from_receipt(cls, receipt: SubmissionReceipt) -> VideoSubmissionResponse:
    return cls(
      job_handle=receipt.handle.serialize(),
      provider=receipt.handle.provider_id,
      normalized_parameters=receipt.normalized.to_dict(),
      prompt_length=receipt.prompt_length,
      fit_strategy=receipt.fit_strategy,
      composed=receipt.composed,
      follow_up_prompts=list(receipt.follow_up_prompts),
      continuity_anchor=receipt.continuity_anchor,
    )


class VideoResultModel(CamelModel):
  url: str
  duration: float | None = None


class VideoStatusResponse(CamelModel):
  status: Literal["Pending", "Ready", "Failed"]
  result: VideoResultModel | None = None
  error: str | None = None
  raw_status: str | None = None
  debug_info: dict[str, Any] | None = None

  @classmethod
  def from_status(cls, status: JobStatus) -> VideoStatusResponse:
    result = VideoResultModel(url=status.result.url, duration=status.result.duration) if status.result is not None else None
    return cls(status=status.kind, result=result, error=status.error, raw_status=status.raw_status, debug_info=status.debug or None)


class LimitReachedResponse(CamelModel):
  status: Literal["LimitReached"] = "LimitReached"
  limit: int
  used: int
  remaining: int = 0
  detail: str


class AdPromptRequest(CamelModel):
  """Request payload for the three-stage ad prompt builder."""

  script: StrictStr = Field(min_length=1, max_length=20000)
  duration: int = Field(default=15, ge=1, le=60, description="Target ad length in seconds.")
  product_context: StrictStr | None = Field(default=None, max_length=20000)
  product_photos_description: StrictStr | None = Field(default=None, max_length=20000)

  @field_validator("script")
  @classmethod
  def script_not_blank(cls, value: str) -> str:
    if not value.strip():
      raise ValueError("Script is required.")
    return value


class AdPromptResponse(CamelModel):
  prompts: list[str]
  is_split: bool
  composed: bool
  continuity_anchor: str | None = None
  visual_identity: str
  cinematic_breakdown: str
  original_script: str
  duration: int

  @classmethod
  def from_result(cls, result: AdPromptResult) -> AdPromptResponse:
    return cls(
      prompts=list(result.composed.parts),
      is_split=result.composed.is_split,
      composed=result.composed.composed,
      continuity_anchor=result.composed.continuity_anchor,
      visual_identity=result.visual_identity,
      cinematic_breakdown=result.cinematic_breakdown,
      original_script=result.original_script,
      duration=result.duration_seconds,
    )


class HealthResponse(BaseModel):
  status: Literal["ok"] = "ok"
  environment: str
