"""Fire-and-forget usage and cost logging for external model calls."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Final, Literal, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app.schema.usage import ApiUsageLog

logger = logging.getLogger(__name__)

Feature = Literal["video", "kling_video", "ad_prompt_build", "prompt_condense", "prompt_compose"]

# USD per 1M tokens, matched by model-name prefix.
TEXT_TOKEN_PRICES: Final[dict[str, tuple[float, float]]] = {
  "grok": (3.00, 15.00),
  "gemini": (0.15, 0.60),
}

# USD per second of generated video.
VIDEO_SECOND_PRICES: Final[dict[str, float]] = {
  "grok-imagine-video-480p": 0.05,
  "grok-imagine-video-720p": 0.07,
  "kling-video": 0.07,
  "kling-video-audio": 0.14,
}

_DEFAULT_VIDEO_SECONDS = 5


def estimate_tokens(text: str | None) -> int:
  """Rough token count at about four characters per token."""
  if not text:
    return 0
  return math.ceil(len(text) / 4)


def _video_price_key(model: str, metadata: dict[str, Any]) -> str | None:
  if model.startswith("grok-imagine-video"):
    return f"grok-imagine-video-{metadata.get('resolution') or '720p'}"
  if "kling" in model:
    return "kling-video-audio" if metadata.get("generate_audio") else "kling-video"
  return None


def estimate_cost_usd(model: str, *, input_tokens: int = 0, output_tokens: int = 0, metadata: dict[str, Any] | None = None) -> float:
  """Estimate the USD cost of one call; unknown models cost 0."""
  metadata = metadata or {}
  video_key = _video_price_key(model, metadata)
  if video_key is not None:
    per_second = VIDEO_SECOND_PRICES.get(video_key, 0.0)
    seconds = metadata.get("duration") or _DEFAULT_VIDEO_SECONDS
    return round(per_second * float(seconds), 6)

  for prefix, (price_in, price_out) in TEXT_TOKEN_PRICES.items():
    if model.startswith(prefix):
      cost = (input_tokens / 1_000_000) * price_in + (output_tokens / 1_000_000) * price_out
      return round(cost, 6)
  return 0.0


@dataclass(frozen=True)
class UsageEvent:
  user_id: str
  feature: Feature
  model: str
  success: bool = True
  user_email: str | None = None
  input_tokens: int = 0
  output_tokens: int = 0
  error_message: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)

  @property
  def estimated_cost_usd(self) -> float:
    return estimate_cost_usd(self.model, input_tokens=self.input_tokens, output_tokens=self.output_tokens, metadata=self.metadata)


class UsageRecorder(Protocol):
  def record(self, event: UsageEvent) -> None: ...


class UsageLogger:
  """Persist usage events on background tasks.

  `record` returns immediately. Write failures are logged and dropped so they never affect the
  request that produced the event.
  """

  def __init__(self, session_factory: Callable[[], AsyncSession] | None, *, enabled: bool = True) -> None:
    self._session_factory = session_factory
    self._enabled = enabled and session_factory is not None
    self._pending: set[asyncio.Task[None]] = set()

  def record(self, event: UsageEvent) -> None:
    if not self._enabled:
      logger.debug("Usage logging disabled; dropping %s event for user_id=%s", event.feature, event.user_id)
      return
    task = asyncio.create_task(self.write(event))
    # Hold a reference until the task finishes so it is not garbage collected mid-write.
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)

  async def write(self, event: UsageEvent) -> None:
    row = ApiUsageLog(
      user_id=event.user_id,
      user_email=event.user_email,
      feature=event.feature,
      model=event.model,
      input_tokens=event.input_tokens,
      output_tokens=event.output_tokens,
      estimated_cost_usd=event.estimated_cost_usd,
      success=event.success,
      error_message=event.error_message,
      metadata_json=event.metadata or None,
    )
    try:
      async with self._session_factory() as session:
        session.add(row)
        await session.commit()
    except Exception:  # noqa: BLE001
      logger.warning("Failed to log API usage feature=%s user_id=%s", event.feature, event.user_id, exc_info=True)

  async def drain(self) -> None:
    """Wait for in-flight writes; used at shutdown."""
    if self._pending:
      await asyncio.gather(*self._pending, return_exceptions=True)
