"""Structural contract shared by the video provider adapters."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from app.video.models import GenerationRequest, JobStatus, NormalizedParameters


@runtime_checkable
class VideoProvider(Protocol):
  """One video back-end behind submit/poll.

  Adapters are stateless: no job table, one HTTP client per call. `poll` never raises; transport
  problems and unexpected payloads come back as Pending with debug details.
  """

  provider_id: str
  max_prompt_length: int

  def prompt_budget(self, *, composed: bool) -> int:
    """Characters available for the caller's prompt text."""
    ...

  def prepare_prompt(self, prompt: str, *, composed: bool) -> str:
    """Return the exact text sent to the provider."""
    ...

  def normalize(self, request: GenerationRequest) -> NormalizedParameters: ...

  async def submit(self, params: NormalizedParameters, prompt: str) -> str:
    """Submit a job and return the provider's native request id."""
    ...

  async def poll(self, native_id: str, *, duration_hint: float | None = None) -> JobStatus: ...


def response_snippet(response: httpx.Response, limit: int = 300) -> str:
  """Return the start of a response body for logs and error messages."""
  try:
    text = response.text
  except (UnicodeDecodeError, httpx.ResponseNotRead):
    return "<unreadable body>"
  return text[:limit]


def json_object(response: httpx.Response) -> dict[str, Any] | None:
  """Decode a JSON object body, returning None for anything else."""
  try:
    payload = response.json()
  except ValueError:
    return None
  return payload if isinstance(payload, dict) else None
