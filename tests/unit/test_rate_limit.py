from __future__ import annotations

import pytest

from app.services.rate_limit import RateLimiter


class FakeClock:
  def __init__(self) -> None:
    self.now = 1000.0

  def __call__(self) -> float:
    return self.now


def test_requests_beyond_the_window_budget_are_refused() -> None:
  clock = FakeClock()
  limiter = RateLimiter(3, 60, clock=clock)

  assert [limiter.check("uid-1").remaining for _ in range(3)] == [2, 1, 0]
  clock.now += 15.5
  refused = limiter.check("uid-1")
  assert refused.allowed is False
  assert refused.reset_in_seconds == 45


def test_window_resets_and_keys_are_independent() -> None:
  clock = FakeClock()
  limiter = RateLimiter(1, 60, clock=clock)

  assert limiter.check("uid-1").allowed
  assert limiter.check("uid-2").allowed
  assert not limiter.check("uid-1").allowed
  clock.now += 60
  assert limiter.check("uid-1").allowed


def test_rejects_non_positive_configuration() -> None:
  with pytest.raises(ValueError):
    RateLimiter(0, 60)
  with pytest.raises(ValueError):
    RateLimiter(5, 0)
