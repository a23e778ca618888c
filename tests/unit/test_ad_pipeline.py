from __future__ import annotations

import pytest
from conftest import FakeTextModel, RecordingUsageLogger
from fastapi.testclient import TestClient

from app.ai.ad_pipeline import AdPromptError, AdPromptPipeline
from app.ai.compositor import PromptCompositor
from app.ai.fitter import PromptFitter
from app.api.deps import get_ad_pipeline, get_rate_limiter, get_usage_recorder
from app.core.security import AuthenticatedUser, get_current_user
from app.main import app
from app.services.rate_limit import RateLimiter

SCRIPT = "Cold brew that never cuts corners. Twelve hours. Zero shortcuts."


def _pipeline(model: FakeTextModel) -> AdPromptPipeline:
  return AdPromptPipeline(model, PromptCompositor(model, PromptFitter(model)))


@pytest.mark.anyio
async def test_three_stages_feed_the_compositor() -> None:
  model = FakeTextModel(["Matte black can, copper ring.", "0-5s: can on ice.\n5-15s: pour shot.", "**Matte** black can on ice,\n\"Cold brew that never cuts corners.\""])
  result = await _pipeline(model).build(script=f"  {SCRIPT} ", duration_seconds=15, product_photos_description="black can photo", product_context="ignored")

  assert result.visual_identity == "Matte black can, copper ring."
  assert result.original_script == SCRIPT
  assert result.composed.parts == ('Matte black can on ice, "Cold brew that never cuts corners."',)
  assert "black can photo" in model.calls[0]["prompt"] and "ignored" not in model.calls[0]["prompt"]
  assert "15 seconds" in model.calls[1]["prompt"]
  assert result.usage == {"prompt_tokens": 30, "completion_tokens": 60}


@pytest.mark.anyio
async def test_long_ads_are_split_into_two_prompts() -> None:
  model = FakeTextModel(["identity", "shots"], json_replies=[{"continuity_frame": "can centered", "part_one": "first", "part_two": "second"}])
  result = await _pipeline(model).build(script=SCRIPT, duration_seconds=30, product_context="cold brew brand")
  assert result.composed.is_split
  assert result.composed.continuity_anchor == "can centered"


@pytest.mark.anyio
async def test_stage_failures_name_the_stage() -> None:
  with pytest.raises(AdPromptError) as exc_info:
    await _pipeline(FakeTextModel(["identity", "  "])).build(script=SCRIPT, duration_seconds=15, product_context="ctx")
  assert exc_info.value.stage == "cinematic_breakdown"
  with pytest.raises(ValueError):
    await _pipeline(FakeTextModel()).build(script="   ", duration_seconds=15, product_context="ctx")


@pytest.mark.anyio
async def test_missing_product_input_skips_identity_and_keeps_the_script() -> None:
  model = FakeTextModel(["0-5s: can on ice.\n5-15s: pour shot."])
  result = await _pipeline(model).build(script=SCRIPT, duration_seconds=15, product_context="   ")

  assert result.visual_identity == ""
  assert result.cinematic_breakdown.startswith("0-5s")
  assert result.composed.composed is False
  assert result.composed.parts == (SCRIPT,)
  assert len(model.calls) == 1 and "15 seconds" in model.calls[0]["prompt"]
  assert result.usage == {"prompt_tokens": 10, "completion_tokens": 20}


@pytest.fixture
def client():
  usage_logger = RecordingUsageLogger()
  app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(id="firebase-uid-1", email="maker@example.com")
  app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(100, 60)
  app.dependency_overrides[get_usage_recorder] = lambda: usage_logger
  try:
    yield TestClient(app), usage_logger
  finally:
    app.dependency_overrides.clear()


def test_ad_prompt_route_returns_prompts_and_logs_usage(client) -> None:
  http, usage_logger = client
  model = FakeTextModel(["identity", "shots", "one flowing prompt"])
  app.dependency_overrides[get_ad_pipeline] = lambda: _pipeline(model)

  response = http.post("/v1/prompts/ad", json={"script": SCRIPT, "productContext": "cold brew brand"})

  assert response.status_code == 200
  body = response.json()
  assert body["prompts"] == ["one flowing prompt"]
  assert body["isSplit"] is False
  assert body["duration"] == 15
  assert [(event.feature, event.success) for event in usage_logger.events] == [("ad_prompt_build", True)]


def test_ad_prompt_route_without_product_input_returns_the_script(client) -> None:
  http, usage_logger = client
  app.dependency_overrides[get_ad_pipeline] = lambda: _pipeline(FakeTextModel(["shots"]))

  response = http.post("/v1/prompts/ad", json={"script": SCRIPT})

  assert response.status_code == 200
  body = response.json()
  assert body["prompts"] == [SCRIPT]
  assert body["composed"] is False
  assert body["visualIdentity"] == ""
  assert [(event.feature, event.success) for event in usage_logger.events] == [("ad_prompt_build", True)]


def test_ad_prompt_failure_is_logged_and_reported(client) -> None:
  http, usage_logger = client
  app.dependency_overrides[get_ad_pipeline] = lambda: _pipeline(FakeTextModel([RuntimeError("model down")]))

  response = http.post("/v1/prompts/ad", json={"script": SCRIPT, "productContext": "cold brew brand"})

  assert response.status_code == 502
  assert [(event.feature, event.success) for event in usage_logger.events] == [("ad_prompt_build", False)]
