"""Base interfaces for text-completion providers and models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None


@dataclass
class SimpleModelResponse:
  """Plain-text model response."""

  content: str
  usage: dict[str, int] | None = None


@dataclass
class StructuredModelResponse:
  """JSON object model response."""

  content: dict[str, Any]
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for text models."""

  name: str

  @abstractmethod
  async def generate(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> ModelResponse:
    """Generate a plain-text response for the given prompt."""

  @abstractmethod
  async def generate_json(self, prompt: str, *, system: str | None = None, max_tokens: int | None = None, temperature: float | None = None) -> StructuredModelResponse:
    """Generate a response that must parse as one JSON object."""

  @staticmethod
  def strip_json_fences(text: str) -> str:
    """Remove ```json fences some models wrap around JSON replies."""
    stripped = text.strip()
    if not stripped.startswith("```"):
      return stripped
    lines = stripped.splitlines()
    # Drop the opening fence (with optional language tag) and the closing fence.
    lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
      lines = lines[:-1]
    return "\n".join(lines).strip()


class Provider(ABC):
  """Abstract base class for text providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
