"""In-memory per-user burst limiter.

Each process keeps its own windows; monthly limits in the usage guard do the real enforcement.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
  allowed: bool
  remaining: int
  reset_in_seconds: int


@dataclass
class _Window:
  count: int
  reset_at: float


class RateLimiter:
  """Fixed-window counter keyed by user id."""

  def __init__(self, max_requests: int = 20, window_seconds: int = 60, *, clock: Callable[[], float] = time.monotonic) -> None:
    if max_requests <= 0 or window_seconds <= 0:
      raise ValueError("max_requests and window_seconds must be positive.")
    self.max_requests = max_requests
    self.window_seconds = window_seconds
    self._clock = clock
    self._windows: dict[str, _Window] = {}
    self._last_cleanup = clock()

  def _cleanup(self, now: float) -> None:
    if now - self._last_cleanup < self.window_seconds:
      return
    self._last_cleanup = now
    expired = [key for key, window in self._windows.items() if now >= window.reset_at]
    for key in expired:
      del self._windows[key]

  def check(self, key: str) -> RateLimitResult:
    """Count one request for key and report whether it is allowed."""
    now = self._clock()
    self._cleanup(now)

    window = self._windows.get(key)
    if window is None or now >= window.reset_at:
      self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
      return RateLimitResult(allowed=True, remaining=self.max_requests - 1, reset_in_seconds=self.window_seconds)

    reset_in = max(1, math.ceil(window.reset_at - now))
    if window.count >= self.max_requests:
      return RateLimitResult(allowed=False, remaining=0, reset_in_seconds=reset_in)

    window.count += 1
    return RateLimitResult(allowed=True, remaining=self.max_requests - window.count, reset_in_seconds=reset_in)

  def reset(self) -> None:
    self._windows.clear()
