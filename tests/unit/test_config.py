from __future__ import annotations

import pytest

from app.config import _parse_monthly_limits, _parse_origins, get_settings
from app.video.providers import build_video_providers


@pytest.fixture
def fresh_settings(monkeypatch):
  get_settings.cache_clear()
  yield monkeypatch
  get_settings.cache_clear()


def test_origins_must_be_explicit() -> None:
  assert _parse_origins("https://app.adreel.io, http://localhost:5173") == ("https://app.adreel.io", "http://localhost:5173")
  with pytest.raises(ValueError):
    _parse_origins("*")
  with pytest.raises(ValueError):
    _parse_origins(None)


def test_monthly_limits_merge_overrides_and_reject_typos() -> None:
  assert _parse_monthly_limits(None) == {"video": 10}
  assert _parse_monthly_limits('{"video": 25, "kling_video": -1}') == {"video": 25, "kling_video": -1}
  with pytest.raises(ValueError):
    _parse_monthly_limits('{"video": -3}')
  with pytest.raises(ValueError):
    _parse_monthly_limits('{"video": "lots"}')


def test_settings_read_prefixed_environment(fresh_settings) -> None:
  fresh_settings.setenv("ADREEL_DEFAULT_VIDEO_PROVIDER", "kling")
  fresh_settings.setenv("ADREEL_POLL_MAX_ATTEMPTS", "40")
  fresh_settings.setenv("ADREEL_ADMIN_EMAILS", "Ops@Adreel.io, ")
  settings = get_settings()
  assert settings.default_video_provider == "kling"
  assert settings.poll_max_attempts == 40
  assert settings.admin_emails == ("ops@adreel.io",)


def test_unknown_video_provider_is_a_configuration_error(fresh_settings) -> None:
  fresh_settings.setenv("ADREEL_DEFAULT_VIDEO_PROVIDER", "sora")
  with pytest.raises(ValueError):
    get_settings()


def test_video_providers_are_built_from_settings(fresh_settings) -> None:
  fresh_settings.setenv("ADREEL_KLING_MAX_PROMPT_CHARS", "2500")
  fresh_settings.setenv("FAL_KEY", "fal-key")
  providers = build_video_providers(get_settings())
  assert set(providers) == {"grok", "kling"}
  assert providers["kling"].max_prompt_length == 2500
