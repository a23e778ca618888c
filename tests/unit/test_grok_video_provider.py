from __future__ import annotations

import json

import httpx
import pytest

from app.video.models import GenerationRequest, ProviderSubmissionError
from app.video.providers.grok import GrokVideoProvider


def _provider(handler) -> GrokVideoProvider:
  return GrokVideoProvider(api_key="xai-test", base_url="https://api.x.ai/v1", transport=httpx.MockTransport(handler))


@pytest.mark.anyio
async def test_submit_posts_snapped_parameters_and_returns_request_id() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"request_id": "req-123"})

  provider = _provider(handler)
  params = provider.normalize(GenerationRequest(prompt="p", duration_seconds=30, aspect_ratio="9:16", resolution="1080p"))
  native_id = await provider.submit(params, "final prompt")

  assert native_id == "req-123"
  body = json.loads(seen[0].content)
  assert seen[0].url == "https://api.x.ai/v1/video/generations"
  assert seen[0].headers["authorization"] == "Bearer xai-test"
  assert body == {"prompt": "final prompt", "model": "grok-2-video", "duration": 15, "aspect_ratio": "9:16", "resolution": "720p"}


@pytest.mark.anyio
async def test_submit_raises_on_http_error_or_missing_request_id() -> None:
  rejecting = _provider(lambda request: httpx.Response(400, json={"error": "bad prompt"}))
  silent = _provider(lambda request: httpx.Response(200, json={"status": "queued"}))
  params = rejecting.normalize(GenerationRequest(prompt="p"))

  with pytest.raises(ProviderSubmissionError) as exc_info:
    await rejecting.submit(params, "p")
  assert exc_info.value.status_code == 400
  with pytest.raises(ProviderSubmissionError):
    await silent.submit(params, "p")


@pytest.mark.anyio
async def test_submit_without_api_key_never_calls_the_network() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise AssertionError("network call made")

  provider = GrokVideoProvider(api_key=None, transport=httpx.MockTransport(handler))
  with pytest.raises(ProviderSubmissionError):
    await provider.submit(provider.normalize(GenerationRequest(prompt="p")), "p")


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("payload", "kind"),
  [
    ({"status": "queued"}, "Pending"),
    ({"status": "IN_PROGRESS"}, "Pending"),
    ({"status": "QUEUED_UNKNOWN"}, "Pending"),
    ({"status": "expired"}, "Failed"),
    ({"status": "done", "url": "https://vidgen.x.ai/v.mp4"}, "Ready"),
  ],
)
async def test_poll_maps_provider_statuses(payload: dict, kind: str) -> None:
  status = await _provider(lambda request: httpx.Response(200, json=payload)).poll("req-1")
  assert status.kind == kind
  assert status.raw_status == payload["status"]


@pytest.mark.anyio
async def test_ready_status_carries_url_and_falls_back_to_duration_hint() -> None:
  provider = _provider(lambda request: httpx.Response(200, json={"status": "completed", "video": {"url": "https://vidgen.x.ai/v.mp4"}}))
  status = await provider.poll("req-1", duration_hint=8)
  assert status.kind == "Ready"
  assert status.result.url == "https://vidgen.x.ai/v.mp4"
  assert status.result.duration == 8


@pytest.mark.anyio
async def test_completed_without_url_stays_pending() -> None:
  status = await _provider(lambda request: httpx.Response(200, json={"status": "completed"})).poll("req-1")
  assert status.kind == "Pending"
  assert status.raw_status == "completed_without_url"


@pytest.mark.anyio
async def test_failed_status_reports_provider_reason() -> None:
  status = await _provider(lambda request: httpx.Response(200, json={"status": "failed", "error": {"message": "content policy"}})).poll("req-1")
  assert status.kind == "Failed"
  assert status.error == "content policy"


@pytest.mark.anyio
async def test_transient_poll_errors_are_pending() -> None:
  def broken(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("reset", request=request)

  transport_error = await _provider(broken).poll("req-1")
  http_error = await _provider(lambda request: httpx.Response(503, text="busy")).poll("req-1")
  malformed = await _provider(lambda request: httpx.Response(200, text="<html>")).poll("req-1")

  assert [s.kind for s in (transport_error, http_error, malformed)] == ["Pending", "Pending", "Pending"]
  assert transport_error.raw_status == "poll_error"
  assert http_error.debug["http_status"] == 503
  assert malformed.raw_status == "malformed_response"
