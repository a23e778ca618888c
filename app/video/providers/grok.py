"""xAI Grok video adapter: submit, then poll a status that carries the result inline."""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx

from app.ai.prompts import BROLL_WRAPPER
from app.video.models import GenerationRequest, JobStatus, NormalizedParameters, ProviderSubmissionError
from app.video.providers.base import json_object, response_snippet
from app.video.providers.params import clamp_duration, snap_aspect_ratio, snap_resolution

logger = logging.getLogger(__name__)

_STATUS_MAP: Final[dict[str, str]] = {
  "pending": "Pending",
  "queued": "Pending",
  "processing": "Pending",
  "in_progress": "Pending",
  "completed": "Ready",
  "succeeded": "Ready",
  "done": "Ready",
  "failed": "Failed",
  "error": "Failed",
  "cancelled": "Failed",
  "canceled": "Failed",
  "expired": "Failed",
}


def _error_reason(payload: dict[str, Any]) -> str:
  error = payload.get("error")
  if isinstance(error, dict):
    error = error.get("message")
  if isinstance(error, str) and error.strip():
    return error.strip()
  return "Video generation failed on xAI"


class GrokVideoProvider:
  """Grok video generation over the xAI REST API."""

  provider_id: Final[str] = "grok"
  usage_model: Final[str] = "grok-imagine-video"
  ASPECT_RATIOS: Final[tuple[str, ...]] = ("16:9", "4:3", "1:1", "9:16", "3:4", "3:2", "2:3")
  RESOLUTIONS: Final[tuple[str, ...]] = ("720p", "480p")
  DEFAULT_ASPECT_RATIO: Final[str] = "16:9"
  DEFAULT_RESOLUTION: Final[str] = "720p"
  MIN_DURATION: Final[int] = 1
  MAX_DURATION: Final[int] = 15
  DEFAULT_DURATION: Final[int] = 5

  def __init__(
    self,
    *,
    api_key: str | None,
    base_url: str = "https://api.x.ai/v1",
    model: str = "grok-2-video",
    max_prompt_length: int = 4000,
    request_timeout: float = 15.0,
    submit_timeout: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self._api_key = api_key
    self._base_url = base_url.rstrip("/")
    self._model = model
    self.max_prompt_length = max_prompt_length
    self._request_timeout = request_timeout
    self._submit_timeout = submit_timeout
    self._transport = transport

  def _build_client(self, timeout: float) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
    return httpx.AsyncClient(timeout=timeout, headers=headers, transport=self._transport)

  def prompt_budget(self, *, composed: bool) -> int:
    if composed:
      return self.max_prompt_length
    return self.max_prompt_length - len(BROLL_WRAPPER.format(prompt=""))

  def prepare_prompt(self, prompt: str, *, composed: bool) -> str:
    # Raw prompts get the B-roll style preamble; composed prompts already carry their own direction.
    if composed:
      return prompt
    return BROLL_WRAPPER.format(prompt=prompt)

  def normalize(self, request: GenerationRequest) -> NormalizedParameters:
    image_url = (request.image_url or "").strip() or None
    return NormalizedParameters(
      provider=self.provider_id,
      model=self._model,
      mode="image-to-video" if image_url else "text-to-video",
      duration_seconds=clamp_duration(request.duration_seconds, minimum=self.MIN_DURATION, maximum=self.MAX_DURATION, default=self.DEFAULT_DURATION),
      aspect_ratio=snap_aspect_ratio(request.aspect_ratio, self.ASPECT_RATIOS, self.DEFAULT_ASPECT_RATIO),
      resolution=snap_resolution(request.resolution, self.RESOLUTIONS, self.DEFAULT_RESOLUTION),
      image_url=image_url,
    )

  async def submit(self, params: NormalizedParameters, prompt: str) -> str:
    if not self._api_key:
      raise ProviderSubmissionError(self.provider_id, "GROK_API_KEY is not configured")

    body: dict[str, Any] = {
      "prompt": prompt,
      "model": params.model,
      "duration": params.duration_seconds,
      "aspect_ratio": params.aspect_ratio,
      "resolution": params.resolution,
    }
    if params.image_url:
      body["image_url"] = params.image_url

    url = f"{self._base_url}/video/generations"
    try:
      async with self._build_client(self._submit_timeout) as client:
        response = await client.post(url, json=body)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      logger.error("Grok video submit failed status=%s body=%s", exc.response.status_code, response_snippet(exc.response))
      raise ProviderSubmissionError(self.provider_id, f"xAI returned HTTP {exc.response.status_code}", status_code=exc.response.status_code) from exc
    except httpx.RequestError as exc:
      logger.error("Grok video submit transport error: %s", exc)
      raise ProviderSubmissionError(self.provider_id, f"xAI request failed: {exc}") from exc

    payload = json_object(response) or {}
    request_id = payload.get("request_id") or payload.get("id")
    if not isinstance(request_id, str) or not request_id:
      raise ProviderSubmissionError(self.provider_id, "xAI response did not include a request id")

    logger.info("Grok video submitted request_id=%s duration=%s aspect=%s resolution=%s", request_id, params.duration_seconds, params.aspect_ratio, params.resolution)
    return request_id

  async def poll(self, native_id: str, *, duration_hint: float | None = None) -> JobStatus:
    url = f"{self._base_url}/video/generations/{native_id}"
    try:
      async with self._build_client(self._request_timeout) as client:
        response = await client.get(url)
    except httpx.RequestError as exc:
      logger.warning("Grok poll transport error request_id=%s: %s", native_id, exc)
      return JobStatus.pending("poll_error", request_id=native_id, error=str(exc))

    if response.is_error:
      logger.warning("Grok poll HTTP %s request_id=%s body=%s", response.status_code, native_id, response_snippet(response))
      return JobStatus.pending("poll_http_error", request_id=native_id, http_status=response.status_code)

    payload = json_object(response)
    if payload is None:
      return JobStatus.pending("malformed_response", request_id=native_id)

    raw_status = str(payload.get("status") or "")
    kind = _STATUS_MAP.get(raw_status.lower(), "Pending")
    if kind == "Failed":
      return JobStatus.failed(_error_reason(payload), raw_status, request_id=native_id)

    if kind == "Ready":
      video = payload.get("video") if isinstance(payload.get("video"), dict) else {}
      video_url = payload.get("url") or video.get("url")
      if not video_url:
        return JobStatus.pending("completed_without_url", request_id=native_id)
      duration = payload.get("duration") or video.get("duration") or duration_hint
      return JobStatus.ready(str(video_url), duration, raw_status, request_id=native_id)

    return JobStatus.pending(raw_status or "unknown", request_id=native_id)
