"""Kling video adapter over the fal.ai queue: submit, poll status, then fetch the result."""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx

from app.video.models import GenerationRequest, JobStatus, NormalizedParameters, ProviderSubmissionError
from app.video.providers.base import json_object, response_snippet
from app.video.providers.params import clamp_float, snap_aspect_ratio, snap_duration_step

logger = logging.getLogger(__name__)

_STATUS_MAP: Final[dict[str, str]] = {
  "IN_QUEUE": "Pending",
  "IN_PROGRESS": "Pending",
  "COMPLETED": "Ready",
  "FAILED": "Failed",
  "ERROR": "Failed",
  "CANCELLED": "Failed",
}

_FAILED_REASON: Final[str] = "Video generation failed on fal.ai"


class KlingVideoProvider:
  """Kling v2.6 pro text-to-video and image-to-video through the fal.ai queue API."""

  provider_id: Final[str] = "kling"
  ASPECT_RATIOS: Final[tuple[str, ...]] = ("16:9", "9:16", "1:1")
  DEFAULT_ASPECT_RATIO: Final[str] = "9:16"
  DURATION_STEP: Final[int] = 5
  MIN_DURATION: Final[int] = 5
  MAX_DURATION: Final[int] = 30
  DEFAULT_CFG_SCALE: Final[float] = 0.5

  def __init__(
    self,
    *,
    api_key: str | None,
    queue_base_url: str = "https://queue.fal.run",
    app_root: str = "fal-ai/kling-video",
    text_endpoint: str = "fal-ai/kling-video/v2.6/pro/text-to-video",
    image_endpoint: str = "fal-ai/kling-video/v2.6/pro/image-to-video",
    max_prompt_length: int = 3000,
    request_timeout: float = 15.0,
    submit_timeout: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
  ) -> None:
    self._api_key = api_key
    self._base_url = queue_base_url.rstrip("/")
    self._app_root = app_root.strip("/")
    self._text_endpoint = text_endpoint.strip("/")
    self._image_endpoint = image_endpoint.strip("/")
    self.max_prompt_length = max_prompt_length
    self._request_timeout = request_timeout
    self._submit_timeout = submit_timeout
    self._transport = transport

  def _build_client(self, timeout: float) -> httpx.AsyncClient:
    headers = {"Authorization": f"Key {self._api_key}", "Content-Type": "application/json"}
    return httpx.AsyncClient(timeout=timeout, headers=headers, transport=self._transport)

  def prompt_budget(self, *, composed: bool) -> int:
    return self.max_prompt_length

  def prepare_prompt(self, prompt: str, *, composed: bool) -> str:
    return prompt

  def normalize(self, request: GenerationRequest) -> NormalizedParameters:
    image_url = (request.image_url or "").strip() or None
    negative_prompt = (request.negative_prompt or "").strip() or None
    return NormalizedParameters(
      provider=self.provider_id,
      model=self._image_endpoint if image_url else self._text_endpoint,
      mode="image-to-video" if image_url else "text-to-video",
      duration_seconds=snap_duration_step(request.duration_seconds, step=self.DURATION_STEP, minimum=self.MIN_DURATION, maximum=self.MAX_DURATION, default=self.MIN_DURATION),
      aspect_ratio=snap_aspect_ratio(request.aspect_ratio, self.ASPECT_RATIOS, self.DEFAULT_ASPECT_RATIO),
      cfg_scale=clamp_float(request.cfg_scale, minimum=0.0, maximum=1.0, default=self.DEFAULT_CFG_SCALE),
      generate_audio=bool(request.generate_audio),
      negative_prompt=negative_prompt,
      image_url=image_url,
    )

  async def submit(self, params: NormalizedParameters, prompt: str) -> str:
    if not self._api_key:
      raise ProviderSubmissionError(self.provider_id, "FAL_KEY is not configured")

    body: dict[str, Any] = {
      "prompt": prompt,
      "duration": str(params.duration_seconds),
      "aspect_ratio": params.aspect_ratio,
      "cfg_scale": params.cfg_scale,
      "generate_audio": bool(params.generate_audio),
    }
    if params.negative_prompt:
      body["negative_prompt"] = params.negative_prompt
    if params.image_url:
      body["image_url"] = params.image_url

    url = f"{self._base_url}/{params.model}"
    try:
      async with self._build_client(self._submit_timeout) as client:
        response = await client.post(url, json=body)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      logger.error("fal.ai submit failed status=%s body=%s", exc.response.status_code, response_snippet(exc.response))
      raise ProviderSubmissionError(self.provider_id, f"fal.ai returned HTTP {exc.response.status_code}", status_code=exc.response.status_code) from exc
    except httpx.RequestError as exc:
      logger.error("fal.ai submit transport error: %s", exc)
      raise ProviderSubmissionError(self.provider_id, f"fal.ai request failed: {exc}") from exc

    payload = json_object(response) or {}
    request_id = payload.get("request_id")
    if not isinstance(request_id, str) or not request_id:
      raise ProviderSubmissionError(self.provider_id, "fal.ai response did not include a request id")

    logger.info("fal.ai Kling submitted request_id=%s model=%s duration=%s aspect=%s", request_id, params.model, params.duration_seconds, params.aspect_ratio)
    return request_id

  def _requests_url(self, native_id: str) -> str:
    return f"{self._base_url}/{self._app_root}/requests/{native_id}"

  async def poll(self, native_id: str, *, duration_hint: float | None = None) -> JobStatus:
    try:
      async with self._build_client(self._request_timeout) as client:
        response = await client.get(f"{self._requests_url(native_id)}/status")
        if response.is_error:
          logger.warning("fal.ai status HTTP %s request_id=%s body=%s", response.status_code, native_id, response_snippet(response))
          return JobStatus.pending("poll_http_error", request_id=native_id, http_status=response.status_code)

        payload = json_object(response)
        if payload is None:
          return JobStatus.pending("malformed_response", request_id=native_id)

        raw_status = str(payload.get("status") or "")
        kind = _STATUS_MAP.get(raw_status.upper(), "Pending")
        if kind == "Failed" or (kind == "Ready" and payload.get("error")):
          reason = payload.get("error") if isinstance(payload.get("error"), str) else _FAILED_REASON
          return JobStatus.failed(reason, raw_status, request_id=native_id)
        if kind == "Pending":
          return JobStatus.pending(raw_status or "unknown", request_id=native_id, queue_position=payload.get("queue_position"))

        # COMPLETED only means the job finished; the video lives behind the response URL.
        response_url = payload.get("response_url") or self._requests_url(native_id)
        result = await client.get(response_url)
    except httpx.RequestError as exc:
      logger.warning("fal.ai poll transport error request_id=%s: %s", native_id, exc)
      return JobStatus.pending("poll_error", request_id=native_id, error=str(exc))

    if result.is_error:
      logger.warning("fal.ai result fetch HTTP %s request_id=%s body=%s", result.status_code, native_id, response_snippet(result))
      return JobStatus.pending("result_fetch_error", request_id=native_id, http_status=result.status_code)

    data = json_object(result) or {}
    video = data.get("video") if isinstance(data.get("video"), dict) else {}
    video_url = video.get("url")
    if not video_url:
      return JobStatus.pending("completed_without_url", request_id=native_id)

    duration = video.get("duration") or duration_hint
    return JobStatus.ready(str(video_url), duration, raw_status, request_id=native_id)
