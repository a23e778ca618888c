from __future__ import annotations

import pytest

from app.video.models import GenerationRequest, JobHandle, JobHandleError
from app.video.providers.grok import GrokVideoProvider
from app.video.providers.kling import KlingVideoProvider
from app.video.providers.params import clamp_duration, snap_aspect_ratio, snap_duration_step, snap_resolution


def test_job_handle_splits_on_first_separator_only() -> None:
  handle = JobHandle.parse("kling::abc::def")
  assert handle.provider_id == "kling"
  assert handle.native_id == "abc::def"
  assert handle.serialize() == "kling::abc::def"


@pytest.mark.parametrize("token", ["", "grok", "::abc", "grok::"])
def test_malformed_job_handles_are_rejected(token: str) -> None:
  with pytest.raises(JobHandleError):
    JobHandle.parse(token)


def test_grok_duration_is_rounded_and_clamped() -> None:
  assert clamp_duration(0.2, minimum=1, maximum=15, default=5) == 1
  assert clamp_duration(7.5, minimum=1, maximum=15, default=5) == 8
  assert clamp_duration(99, minimum=1, maximum=15, default=5) == 15
  assert clamp_duration("soon", minimum=1, maximum=15, default=5) == 5


def test_kling_duration_snaps_to_five_second_steps() -> None:
  snap = lambda value: snap_duration_step(value, step=5, minimum=5, maximum=30, default=5)  # noqa: E731
  assert snap(1) == 5
  assert snap(12.5) == 15
  assert snap(12) == 10
  assert snap(44) == 30
  assert snap(None) == 5


def test_aspect_ratio_snaps_to_nearest_supported_value() -> None:
  grok_ratios = GrokVideoProvider.ASPECT_RATIOS
  assert snap_aspect_ratio("16:9", grok_ratios, "16:9") == "16:9"
  assert snap_aspect_ratio("21:9", grok_ratios, "16:9") == "16:9"
  assert snap_aspect_ratio("4:5", grok_ratios, "16:9") == "3:4"
  assert snap_aspect_ratio("wide", grok_ratios, "16:9") == "16:9"
  assert snap_aspect_ratio("4:5", KlingVideoProvider.ASPECT_RATIOS, "9:16") == "1:1"


def test_resolution_snaps_by_line_count() -> None:
  tiers = GrokVideoProvider.RESOLUTIONS
  assert snap_resolution("1080p", tiers, "720p") == "720p"
  assert snap_resolution("360p", tiers, "720p") == "480p"
  assert snap_resolution("hd", tiers, "720p") == "720p"


def test_kling_normalization_picks_endpoint_by_reference_image() -> None:
  provider = KlingVideoProvider(api_key="fal-key")
  text = provider.normalize(GenerationRequest(prompt="p", duration_seconds=17, aspect_ratio="16:10", cfg_scale=3))
  image = provider.normalize(GenerationRequest(prompt="p", image_url="https://cdn.example/img.png", cfg_scale=0))

  assert text.mode == "text-to-video" and text.model.endswith("text-to-video")
  assert (text.duration_seconds, text.aspect_ratio, text.cfg_scale) == (15, "16:9", 1.0)
  assert image.mode == "image-to-video" and image.model.endswith("image-to-video")
  assert image.cfg_scale == 0.0
  assert image.aspect_ratio == "9:16"


def test_grok_budget_reserves_room_for_style_preamble_on_raw_prompts() -> None:
  provider = GrokVideoProvider(api_key="xai-key", max_prompt_length=4000)
  raw_budget = provider.prompt_budget(composed=False)
  assert raw_budget < 4000
  assert provider.prompt_budget(composed=True) == 4000
  assert len(provider.prepare_prompt("x" * raw_budget, composed=False)) == 4000
  assert provider.prepare_prompt("composed", composed=True) == "composed"
