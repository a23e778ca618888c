"""Retry text-model calls that fail on rate limits or exhausted quota."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_DELAYS: tuple[float, ...] = (5, 20, 50)


def is_rate_limit_error(error: BaseException) -> bool:
  """Return True for 429 and quota errors from either SDK."""
  if getattr(error, "status_code", None) == 429 or getattr(error, "code", None) == 429:
    return True
  message = str(error)
  return any(marker in message for marker in ("429", "Too Many Requests", "Resource Exhausted", "RESOURCE_EXHAUSTED", "Quota Exceeded"))


async def retry_with_backoff(func: Callable[..., Awaitable[T]], *args, delays: Sequence[float] = DEFAULT_DELAYS, **kwargs) -> T:
  """
  Await func, retrying only on rate-limit errors.

  Delays default to 5s, 20s, 50s; the call after the last delay propagates its error.
  """
  for attempt, delay in enumerate(delays):
    try:
      return await func(*args, **kwargs)
    except Exception as e:
      if not is_rate_limit_error(e):
        raise
      logger.warning("Rate limited (attempt %d/%d): %s. Retrying in %ss", attempt + 1, len(delays), e, delay)
      await asyncio.sleep(delay)

  return await func(*args, **kwargs)
