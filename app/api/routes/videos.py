from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from app.api.deps import enforce_rate_limit, get_poll_service, get_video_service
from app.api.models import LimitReachedResponse, VideoGenerationRequest, VideoStatusResponse, VideoSubmissionResponse
from app.config import Settings, get_settings
from app.core.security import AuthenticatedUser, get_current_user
from app.services.videos import VideoGenerationService

router = APIRouter()
logger = logging.getLogger(__name__)

_DOWNLOAD_TIMEOUT_SECONDS = 120.0


def get_media_transport() -> httpx.AsyncBaseTransport | None:
  """Transport for the download proxy; overridden in tests."""
  return None


def is_allowed_media_url(url: str, allowed_domains: tuple[str, ...]) -> bool:
  """Accept only https URLs whose host sits under one of the provider CDN suffixes."""
  try:
    parsed = urlparse(url)
  except ValueError:
    return False
  host = (parsed.hostname or "").lower()
  if parsed.scheme != "https" or not host:
    return False
  for domain in allowed_domains:
    suffix = domain.lower()
    if host.endswith(suffix if suffix.startswith(".") else f".{suffix}") or host == suffix.lstrip("."):
      return True
  return False


@router.post("", response_model=VideoSubmissionResponse, responses={429: {"model": LimitReachedResponse}})
async def submit_video(
  request: VideoGenerationRequest,
  current_user: AuthenticatedUser = Depends(enforce_rate_limit),  # noqa: B008
  service: VideoGenerationService = Depends(get_video_service),  # noqa: B008
) -> VideoSubmissionResponse:
  """Submit a video job and return the handle to poll."""
  receipt = await service.submit(current_user, request.to_generation_request(), provider_id=request.provider)
  return VideoSubmissionResponse.from_receipt(receipt)


@router.get("/status", response_model=VideoStatusResponse, response_model_exclude_none=True)
async def get_video_status(
  handle: str = Query(min_length=3, max_length=512, description="Job handle returned at submission."),
  duration: float | None = Query(default=None, ge=0, le=120, description="Requested duration, reported when the provider omits it."),
  current_user: AuthenticatedUser = Depends(get_current_user),  # noqa: B008
  service: VideoGenerationService = Depends(get_poll_service),  # noqa: B008
) -> VideoStatusResponse:
  status_ = await service.poll(handle, duration_hint=duration)
  return VideoStatusResponse.from_status(status_)


@router.get("/download")
async def download_video(
  url: str = Query(min_length=8, max_length=4096),
  current_user: AuthenticatedUser = Depends(get_current_user),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  transport: httpx.AsyncBaseTransport | None = Depends(get_media_transport),  # noqa: B008
) -> StreamingResponse:
  """Stream a finished video from the provider CDN as an attachment."""
  if not is_allowed_media_url(url, settings.proxy_allowed_domains):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid video URL domain")

  client = httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT_SECONDS, transport=transport, follow_redirects=False)
  try:
    upstream = await client.send(client.build_request("GET", url), stream=True)
  except httpx.RequestError as exc:
    await client.aclose()
    logger.warning("Video download failed user_id=%s host=%s: %s", current_user.id, urlparse(url).hostname, exc)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch video") from exc

  if upstream.is_error:
    logger.warning("Video download upstream HTTP %s user_id=%s host=%s", upstream.status_code, current_user.id, urlparse(url).hostname)
    await upstream.aclose()
    await client.aclose()
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to fetch video")

  headers = {"Content-Disposition": 'attachment; filename="video.mp4"', "Cache-Control": "no-cache"}
  if "content-length" in upstream.headers:
    headers["Content-Length"] = upstream.headers["content-length"]

  async def _close() -> None:
    await upstream.aclose()
    await client.aclose()

  return StreamingResponse(upstream.aiter_raw(), media_type="video/mp4", headers=headers, background=BackgroundTask(_close))
