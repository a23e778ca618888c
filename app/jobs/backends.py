"""JobBackend implementations for the supervisor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.security import AuthenticatedUser
from app.services.usage_guard import LimitReachedError
from app.services.videos import SubmissionReceipt, VideoGenerationService
from app.video.models import GenerationRequest, InvalidGenerationRequestError, JobHandle, JobStatus, NormalizedParameters, ProviderSubmissionError

logger = logging.getLogger(__name__)


@dataclass
class ServiceJobBackend:
  """Drive the in-process service on behalf of one user."""

  service: VideoGenerationService
  user: AuthenticatedUser
  provider_id: str | None = None

  async def submit(self, request: GenerationRequest) -> SubmissionReceipt:
    return await self.service.submit(self.user, request, provider_id=self.provider_id)

  async def poll(self, handle: JobHandle, *, duration_hint: float | None = None) -> JobStatus:
    return await self.service.poll(handle, duration_hint=duration_hint)


def _request_body(request: GenerationRequest, provider_id: str | None) -> dict[str, Any]:
  body = {
    "prompt": request.prompt,
    "provider": provider_id,
    "duration": request.duration_seconds,
    "aspectRatio": request.aspect_ratio,
    "resolution": request.resolution,
    "imageUrl": request.image_url,
    "negativePrompt": request.negative_prompt,
    "generateAudio": request.generate_audio,
    "cfgScale": request.cfg_scale,
    "visualIdentity": request.visual_identity,
    "cinematicBreakdown": request.cinematic_breakdown,
    "script": request.script,
    "composedPrompt": request.composed_prompt,
  }
  return {key: value for key, value in body.items() if value is not None}


def _error_detail(response: httpx.Response) -> str:
  try:
    payload = response.json()
  except ValueError:
    return response.text[:200]
  if isinstance(payload, dict):
    return str(payload.get("detail") or payload.get("error") or payload)
  return str(payload)


class HttpJobBackend:
  """Submit and poll through the public HTTP API with a Firebase ID token."""

  def __init__(self, base_url: str, id_token: str, *, provider_id: str | None = None, timeout: float = 60.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._base_url = base_url.rstrip("/")
    self._id_token = id_token
    self._provider_id = provider_id
    self._timeout = timeout
    self._transport = transport

  def _build_client(self) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {self._id_token}"}
    return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, headers=headers, transport=self._transport)

  async def submit(self, request: GenerationRequest) -> SubmissionReceipt:
    try:
      async with self._build_client() as client:
        response = await client.post("/v1/videos", json=_request_body(request, self._provider_id))
    except httpx.RequestError as exc:
      raise ProviderSubmissionError("api", f"request failed: {exc}") from exc

    if response.status_code == 429:
      try:
        payload = response.json()
      except ValueError:
        payload = None
      if isinstance(payload, dict) and payload.get("status") == "LimitReached":
        raise LimitReachedError("video", limit=int(payload.get("limit", 0)), used=int(payload.get("used", 0)))
      raise ProviderSubmissionError("api", _error_detail(response), status_code=429)
    if response.status_code in (400, 422):
      raise InvalidGenerationRequestError(_error_detail(response))
    if response.is_error:
      raise ProviderSubmissionError("api", _error_detail(response), status_code=response.status_code)

    data = response.json()
    return SubmissionReceipt(
      handle=JobHandle.parse(data["jobHandle"]),
      normalized=NormalizedParameters.from_dict(data["normalizedParameters"]),
      prompt_length=int(data["promptLength"]),
      fit_strategy=data["fitStrategy"],
      composed=bool(data.get("composed", False)),
      follow_up_prompts=tuple(data.get("followUpPrompts") or ()),
      continuity_anchor=data.get("continuityAnchor"),
    )

  async def poll(self, handle: JobHandle, *, duration_hint: float | None = None) -> JobStatus:
    params: dict[str, Any] = {"handle": handle.serialize()}
    if duration_hint is not None:
      params["duration"] = duration_hint
    async with self._build_client() as client:
      response = await client.get("/v1/videos/status", params=params)
    if response.is_error:
      logger.warning("Status endpoint returned HTTP %s for handle=%s", response.status_code, handle)
      return JobStatus.pending("poll_http_error", http_status=response.status_code)

    data = response.json()
    debug = data.get("debugInfo") or {}
    kind = data.get("status")
    if kind == "Ready" and data.get("result"):
      return JobStatus.ready(data["result"]["url"], data["result"].get("duration"), data.get("rawStatus"), **debug)
    if kind == "Failed":
      return JobStatus.failed(data.get("error") or "Video generation failed", data.get("rawStatus"), **debug)
    return JobStatus.pending(data.get("rawStatus"), **debug)
