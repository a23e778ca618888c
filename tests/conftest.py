"""Shared fixtures and fakes for the unit tests."""

from __future__ import annotations

import os

# Settings are validated on first import; provide the required values before anything loads app.main.
os.environ.setdefault("ADREEL_ALLOWED_ORIGINS", "http://localhost:5173")
os.environ.setdefault("ADREEL_USAGE_LOGGING_ENABLED", "false")

from collections.abc import Iterable  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402

from app.ai.providers.base import AIModel, SimpleModelResponse, StructuredModelResponse  # noqa: E402
from app.core.security import AuthenticatedUser  # noqa: E402
from app.services.usage_guard import UsageDecision, decide  # noqa: E402
from app.telemetry.usage_logger import UsageEvent  # noqa: E402


@pytest.fixture
def anyio_backend():
  return "asyncio"


class FakeTextModel(AIModel):
  """Scripted text model; each call pops the next reply (an exception is raised instead of returned)."""

  def __init__(self, replies: Iterable[Any] = (), *, json_replies: Iterable[Any] = (), name: str = "grok-3-mini") -> None:
    self.name = name
    self._replies = list(replies)
    self._json_replies = list(json_replies)
    self.calls: list[dict[str, Any]] = []

  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> SimpleModelResponse:
    self.calls.append({"kind": "text", "prompt": prompt, "system": system, "max_tokens": max_tokens})
    reply = self._replies.pop(0)
    if isinstance(reply, BaseException):
      raise reply
    return SimpleModelResponse(content=reply, usage={"prompt_tokens": 10, "completion_tokens": 20})

  async def generate_json(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> StructuredModelResponse:
    self.calls.append({"kind": "json", "prompt": prompt, "system": system, "max_tokens": max_tokens})
    reply = self._json_replies.pop(0)
    if isinstance(reply, BaseException):
      raise reply
    return StructuredModelResponse(content=reply, usage={"prompt_tokens": 30, "completion_tokens": 40})


class FakeUsageGuard:
  def __init__(self, limit: int = 10, used: int = 0, *, fail_increment: bool = False) -> None:
    self.limit = limit
    self.used = used
    self.fail_increment = fail_increment
    self.checks = 0
    self.increments = 0

  async def check_limit(self, user_id: str, kind: str) -> UsageDecision:
    self.checks += 1
    return decide(self.limit, self.used)

  async def increment(self, user_id: str, kind: str) -> None:
    if self.fail_increment:
      raise RuntimeError("usage store down")
    self.increments += 1
    self.used += 1


class RecordingUsageLogger:
  def __init__(self) -> None:
    self.events: list[UsageEvent] = []

  def record(self, event: UsageEvent) -> None:
    self.events.append(event)

  def features(self) -> list[str]:
    return [event.feature for event in self.events]


@pytest.fixture
def user() -> AuthenticatedUser:
  return AuthenticatedUser(id="firebase-uid-1", email="maker@example.com")


@pytest.fixture
def usage_guard() -> FakeUsageGuard:
  return FakeUsageGuard()


@pytest.fixture
def usage_logger() -> RecordingUsageLogger:
  return RecordingUsageLogger()
