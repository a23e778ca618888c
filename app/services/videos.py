"""Admit, compose, fit and submit video generation jobs; poll them by handle."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace

from app.ai.compositor import CompositionError, PromptCompositor
from app.ai.fitter import FitResult, FitStrategy, PromptFitter
from app.core.security import AuthenticatedUser
from app.services.usage_guard import LimitReachedError, UsageGuard
from app.telemetry.usage_logger import UsageEvent, UsageRecorder, estimate_tokens
from app.video.models import GenerationRequest, InvalidGenerationRequestError, JobHandle, JobHandleError, JobStatus, NormalizedParameters, ProviderSubmissionError
from app.video.providers.base import VideoProvider

logger = logging.getLogger(__name__)

USAGE_KIND = "video"
_USAGE_FEATURES = {"grok": "video", "kling": "kling_video"}


@dataclass(frozen=True)
class SubmissionReceipt:
  """What the caller needs to poll the job and continue a two-part ad."""

  handle: JobHandle
  normalized: NormalizedParameters
  prompt_length: int
  fit_strategy: FitStrategy
  composed: bool
  follow_up_prompts: tuple[str, ...] = ()
  continuity_anchor: str | None = None


@dataclass(frozen=True)
class _PreparedPrompt:
  text: str
  composed: bool
  follow_up: tuple[str, ...] = ()
  continuity_anchor: str | None = None


class VideoGenerationService:
  """Stateless submit/poll service; job state lives in the handle returned to the caller."""

  def __init__(
    self,
    *,
    providers: Mapping[str, VideoProvider],
    fitter: PromptFitter,
    usage_logger: UsageRecorder,
    usage_guard: UsageGuard | None = None,
    compositor: PromptCompositor | None = None,
    default_provider: str = "grok",
  ) -> None:
    if default_provider not in providers:
      raise ValueError(f"Unknown default provider {default_provider!r}.")
    self._providers = dict(providers)
    self._fitter = fitter
    self._usage_guard = usage_guard
    self._usage_logger = usage_logger
    self._compositor = compositor
    self._default_provider = default_provider

  def _provider(self, provider_id: str | None) -> VideoProvider:
    provider = self._providers.get(provider_id or self._default_provider)
    if provider is None:
      raise InvalidGenerationRequestError(f"Unknown video provider {provider_id!r}.")
    return provider

  async def submit(self, user: AuthenticatedUser, request: GenerationRequest, *, provider_id: str | None = None) -> SubmissionReceipt:
    """Submit one job.

    Raises InvalidGenerationRequestError before any other work, LimitReachedError before any provider
    call, and ProviderSubmissionError when the provider rejects the job. Usage is incremented exactly
    once, and only after the provider accepted the job.
    """
    # Validate the request before touching the allowance.
    provider = self._provider(provider_id)
    raw_prompt = (request.prompt or "").strip()
    precomposed = (request.composed_prompt or "").strip()
    if not raw_prompt and not precomposed:
      raise InvalidGenerationRequestError("Prompt is required.")

    # Refuse over-limit users before any provider call.
    if self._usage_guard is None:
      raise RuntimeError("Submissions require a usage guard.")
    decision = await self._usage_guard.check_limit(user.id, USAGE_KIND)
    if not decision.allowed:
      logger.info("Video submission refused user_id=%s limit=%s used=%s", user.id, decision.limit, decision.used)
      raise LimitReachedError(USAGE_KIND, limit=decision.limit, used=decision.used)

    prepared = await self._prepare_prompt(user, request, raw_prompt, precomposed)

    # Each half of a split ad is rendered as its own clip.
    clip_request = request
    if prepared.follow_up:
      clip_request = replace(request, duration_seconds=float(request.duration_seconds or 0) / 2)
    params = provider.normalize(clip_request)

    # Fit the prompt to the provider's limit.
    fitted = await self._fitter.fit(prepared.text, provider.prompt_budget(composed=prepared.composed))
    self._log_condense(user, fitted, provider.provider_id)
    final_prompt = provider.prepare_prompt(fitted.text, composed=prepared.composed)

    feature = _USAGE_FEATURES.get(provider.provider_id, "video")
    usage_model = getattr(provider, "usage_model", params.model)
    metadata = {"duration": params.duration_seconds, "aspect_ratio": params.aspect_ratio, "resolution": params.resolution, "generate_audio": params.generate_audio, "mode": params.mode, "prompt_length": len(final_prompt), "fit_strategy": fitted.strategy}

    # Submit and record the outcome either way.
    try:
      native_id = await provider.submit(params, final_prompt)
    except ProviderSubmissionError as exc:
      self._usage_logger.record(UsageEvent(user_id=user.id, user_email=user.email, feature=feature, model=usage_model, success=False, error_message=str(exc), metadata=metadata))
      raise

    # Count the job only once the provider has accepted it.
    handle = JobHandle(provider_id=provider.provider_id, native_id=native_id)
    try:
      await self._usage_guard.increment(user.id, USAGE_KIND)
    except Exception:  # noqa: BLE001
      # The provider already accepted (and bills) the job; keep the handle usable.
      logger.error("Usage increment failed after accepted submission user_id=%s handle=%s", user.id, handle, exc_info=True)

    self._usage_logger.record(UsageEvent(user_id=user.id, user_email=user.email, feature=feature, model=usage_model, metadata={**metadata, "request_id": native_id}))
    logger.info("Video job accepted user_id=%s handle=%s prompt_length=%d fit=%s", user.id, handle, len(final_prompt), fitted.strategy)
    return SubmissionReceipt(
      handle=handle,
      normalized=params,
      prompt_length=len(final_prompt),
      fit_strategy=fitted.strategy,
      composed=prepared.composed,
      follow_up_prompts=prepared.follow_up,
      continuity_anchor=prepared.continuity_anchor,
    )

  async def _prepare_prompt(self, user: AuthenticatedUser, request: GenerationRequest, raw_prompt: str, precomposed: str) -> _PreparedPrompt:
    if precomposed:
      return _PreparedPrompt(text=precomposed, composed=True)
    if self._compositor is None or not request.has_composition_inputs:
      return _PreparedPrompt(text=raw_prompt, composed=False)

    duration = float(request.duration_seconds or 0)
    try:
      composed = await self._compositor.compose(visual_identity=request.visual_identity, cinematic_breakdown=request.cinematic_breakdown, script=request.script, duration_seconds=duration, raw_prompt=raw_prompt)
    except CompositionError as exc:
      logger.warning("Prompt composition failed; using the raw prompt: %s", exc)
      self._usage_logger.record(UsageEvent(user_id=user.id, user_email=user.email, feature="prompt_compose", model=self._compositor.model_name or "unknown", success=False, error_message=str(exc)))
      return _PreparedPrompt(text=raw_prompt, composed=False)

    # Record the fusion cost; the raw-prompt fallback is free.
    if composed.composed:
      usage = composed.usage or {}
      self._usage_logger.record(
        UsageEvent(
          user_id=user.id,
          user_email=user.email,
          feature="prompt_compose",
          model=self._compositor.model_name or "unknown",
          input_tokens=usage.get("prompt_tokens", 0),
          output_tokens=usage.get("completion_tokens", 0) or sum(estimate_tokens(part) for part in composed.parts),
          metadata={"parts": len(composed.parts), "duration": duration},
        )
      )
    return _PreparedPrompt(text=composed.parts[0], composed=composed.composed, follow_up=composed.parts[1:], continuity_anchor=composed.continuity_anchor)

  def _log_condense(self, user: AuthenticatedUser, fitted: FitResult, provider_id: str) -> None:
    # Only summarizer calls cost money; plain truncation is free.
    if fitted.usage is None and fitted.strategy != "summarized":
      return
    usage = fitted.usage or {}
    self._usage_logger.record(
      UsageEvent(
        user_id=user.id,
        user_email=user.email,
        feature="prompt_condense",
        model=self._fitter.model_name or "unknown",
        input_tokens=usage.get("prompt_tokens", 0),
        output_tokens=usage.get("completion_tokens", 0) or estimate_tokens(fitted.text),
        metadata={"source": provider_id, "original_length": fitted.original_length, "fitted_length": len(fitted.text), "strategy": fitted.strategy},
      )
    )

  async def poll(self, handle: JobHandle | str, *, duration_hint: float | None = None) -> JobStatus:
    """Return the job's current normalized status. Only malformed handles raise."""
    if isinstance(handle, str):
      handle = JobHandle.parse(handle)
    provider = self._providers.get(handle.provider_id)
    if provider is None:
      raise JobHandleError(f"Unknown provider {handle.provider_id!r} in job handle.")

    try:
      status = await provider.poll(handle.native_id, duration_hint=duration_hint)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Poll raised for handle=%s; reporting Pending", handle, exc_info=True)
      return JobStatus.pending("poll_error", error=str(exc))

    logger.debug("Polled handle=%s status=%s raw=%s", handle, status.kind, status.raw_status)
    return status
