from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.api.models import AdPromptRequest, VideoGenerationRequest, VideoStatusResponse
from app.video.models import JobStatus


def test_generation_request_accepts_camel_and_snake_keys() -> None:
  camel = VideoGenerationRequest.model_validate({"prompt": "p", "aspectRatio": "9:16", "negativePrompt": "blur"})
  snake = VideoGenerationRequest.model_validate({"prompt": "p", "aspect_ratio": "9:16", "negative_prompt": "blur"})
  assert camel == snake


def test_generation_request_rejects_unknown_fields_and_providers() -> None:
  with pytest.raises(ValidationError):
    VideoGenerationRequest.model_validate({"prompt": "p", "webhook": "https://evil.example"})
  with pytest.raises(ValidationError):
    VideoGenerationRequest.model_validate({"prompt": "p", "provider": "sora"})


def test_composed_prompt_alone_is_enough() -> None:
  request = VideoGenerationRequest.model_validate({"composedPrompt": "ready"}).to_generation_request()
  assert request.composed_prompt == "ready"
  assert request.prompt == ""


def test_explicit_image_url_wins_over_list() -> None:
  request = VideoGenerationRequest.model_validate({"prompt": "p", "imageUrl": "https://a/x.png", "imageUrls": ["https://b/y.png"]})
  assert request.to_generation_request().image_url == "https://a/x.png"


def test_ad_prompt_request_bounds_duration() -> None:
  with pytest.raises(ValidationError):
    AdPromptRequest.model_validate({"script": "s", "productContext": "c", "duration": 61})
  assert AdPromptRequest.model_validate({"script": "s", "productPhotosDescription": "red can"}).duration == 15


def test_failed_status_serializes_camel_case() -> None:
  response = VideoStatusResponse.from_status(JobStatus.failed("content policy", "failed", request_id="req-1"))
  assert response.model_dump(by_alias=True, exclude_none=True) == {"status": "Failed", "error": "content policy", "rawStatus": "failed", "debugInfo": {"request_id": "req-1"}}


def test_ad_prompt_request_product_input_is_optional() -> None:
  request = AdPromptRequest.model_validate({"script": "Twelve hours. Zero shortcuts."})
  assert request.product_context is None and request.product_photos_description is None
  with pytest.raises(ValidationError):
    AdPromptRequest.model_validate({"script": "   "})
