from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.schema.usage import ApiUsageLog
from app.telemetry.usage_logger import UsageEvent, UsageLogger, estimate_cost_usd, estimate_tokens


def test_estimate_tokens_rounds_up_quarter_length() -> None:
  assert estimate_tokens(None) == 0
  assert estimate_tokens("") == 0
  assert estimate_tokens("abcde") == 2


def test_video_cost_is_priced_per_second() -> None:
  assert estimate_cost_usd("grok-imagine-video", metadata={"duration": 10, "resolution": "480p"}) == 0.5
  assert estimate_cost_usd("fal-ai/kling-video/v2.6/pro/text-to-video", metadata={"duration": 10, "generate_audio": True}) == 1.4
  assert estimate_cost_usd("fal-ai/kling-video/v2.6/pro/text-to-video", metadata={}) == 0.35


def test_text_cost_uses_token_prices_and_unknown_models_are_free() -> None:
  assert estimate_cost_usd("grok-3-mini", input_tokens=1_000_000, output_tokens=1_000_000) == 18.0
  assert estimate_cost_usd("mystery-model", input_tokens=500) == 0.0


def _session_factory(session: MagicMock) -> MagicMock:
  context = MagicMock()
  context.__aenter__ = AsyncMock(return_value=session)
  context.__aexit__ = AsyncMock(return_value=False)
  return MagicMock(return_value=context)


@pytest.mark.anyio
async def test_recorded_event_is_written_in_background() -> None:
  session = MagicMock()
  session.commit = AsyncMock()
  usage_logger = UsageLogger(_session_factory(session))

  usage_logger.record(UsageEvent(user_id="uid-1", feature="video", model="grok-imagine-video", metadata={"duration": 6, "resolution": "720p"}))
  await usage_logger.drain()

  row = session.add.call_args.args[0]
  assert isinstance(row, ApiUsageLog)
  assert row.feature == "video"
  assert row.estimated_cost_usd == pytest.approx(0.42)
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_write_failures_are_swallowed() -> None:
  session = MagicMock()
  session.commit = AsyncMock(side_effect=RuntimeError("db down"))
  usage_logger = UsageLogger(_session_factory(session))

  await usage_logger.write(UsageEvent(user_id="uid-1", feature="prompt_condense", model="grok-3-mini", success=False, error_message="boom"))


@pytest.mark.anyio
async def test_disabled_logger_never_opens_a_session() -> None:
  factory = MagicMock()
  UsageLogger(factory, enabled=False).record(UsageEvent(user_id="uid-1", feature="video", model="grok-imagine-video"))
  UsageLogger(None).record(UsageEvent(user_id="uid-1", feature="video", model="grok-imagine-video"))
  factory.assert_not_called()
