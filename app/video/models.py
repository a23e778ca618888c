"""Provider-neutral video generation types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

StatusKind = Literal["Pending", "Ready", "Failed"]
GenerationMode = Literal["text-to-video", "image-to-video"]

HANDLE_SEPARATOR = "::"


class VideoPipelineError(Exception):
  """Base class for video pipeline errors surfaced to callers."""


class InvalidGenerationRequestError(VideoPipelineError, ValueError):
  """Raised for requests that must never reach a provider."""


class JobHandleError(InvalidGenerationRequestError):
  """Raised when a job handle cannot be parsed or names an unknown provider."""


class ProviderSubmissionError(VideoPipelineError):
  """Raised when a provider rejects or fails a submission."""

  def __init__(self, provider_id: str, message: str, *, status_code: int | None = None) -> None:
    super().__init__(f"{provider_id}: {message}")
    self.provider_id = provider_id
    self.status_code = status_code


@dataclass(frozen=True)
class GenerationRequest:
  """A caller's request before provider-specific snapping."""

  prompt: str
  duration_seconds: float | None = None
  aspect_ratio: str | None = None
  resolution: str | None = None
  image_url: str | None = None
  negative_prompt: str | None = None
  generate_audio: bool | None = None
  cfg_scale: Any = None
  # Inputs for composing the prompt server-side; all three must be present to compose.
  visual_identity: str | None = None
  cinematic_breakdown: str | None = None
  script: str | None = None
  # Already composed upstream (e.g. by the ad prompt builder); used instead of `prompt` when set.
  composed_prompt: str | None = None

  @property
  def has_composition_inputs(self) -> bool:
    return all((value or "").strip() for value in (self.visual_identity, self.cinematic_breakdown, self.script))


@dataclass(frozen=True)
class NormalizedParameters:
  """Values actually sent to a provider after clamping and snapping."""

  provider: str
  model: str
  mode: GenerationMode
  duration_seconds: int
  aspect_ratio: str
  resolution: str | None = None
  cfg_scale: float | None = None
  generate_audio: bool | None = None
  negative_prompt: str | None = None
  image_url: str | None = None

  def to_dict(self) -> dict[str, Any]:
    payload = {
      "provider": self.provider,
      "model": self.model,
      "mode": self.mode,
      "durationSeconds": self.duration_seconds,
      "aspectRatio": self.aspect_ratio,
      "resolution": self.resolution,
      "cfgScale": self.cfg_scale,
      "generateAudio": self.generate_audio,
      "negativePrompt": self.negative_prompt,
      "imageUrl": self.image_url,
    }
    return {key: value for key, value in payload.items() if value is not None}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> NormalizedParameters:
    """Inverse of `to_dict`, for clients reading the submission response."""
    return cls(
      provider=payload["provider"],
      model=payload["model"],
      mode=payload["mode"],
      duration_seconds=int(payload["durationSeconds"]),
      aspect_ratio=payload["aspectRatio"],
      resolution=payload.get("resolution"),
      cfg_scale=payload.get("cfgScale"),
      generate_audio=payload.get("generateAudio"),
      negative_prompt=payload.get("negativePrompt"),
      image_url=payload.get("imageUrl"),
    )


@dataclass(frozen=True)
class VideoResult:
  url: str
  duration: float | None = None


@dataclass(frozen=True)
class JobStatus:
  """Normalized provider status. Unknown provider states are reported as Pending."""

  kind: StatusKind
  result: VideoResult | None = None
  error: str | None = None
  raw_status: str | None = None
  debug: dict[str, Any] = field(default_factory=dict)

  @classmethod
  def pending(cls, raw_status: str | None = None, **debug: Any) -> JobStatus:
    return cls(kind="Pending", raw_status=raw_status, debug=debug)

  @classmethod
  def ready(cls, url: str, duration: float | None, raw_status: str | None = None, **debug: Any) -> JobStatus:
    return cls(kind="Ready", result=VideoResult(url=url, duration=duration), raw_status=raw_status, debug=debug)

  @classmethod
  def failed(cls, reason: str, raw_status: str | None = None, **debug: Any) -> JobStatus:
    return cls(kind="Failed", error=reason, raw_status=raw_status, debug=debug)

  @property
  def is_terminal(self) -> bool:
    return self.kind != "Pending"


@dataclass(frozen=True)
class JobHandle:
  """Provider id plus the provider's native request id."""

  provider_id: str
  native_id: str

  def __post_init__(self) -> None:
    if not self.provider_id or HANDLE_SEPARATOR in self.provider_id:
      raise JobHandleError(f"Invalid provider id {self.provider_id!r}.")
    if not self.native_id:
      raise JobHandleError("Job handle is missing the native request id.")

  def serialize(self) -> str:
    return f"{self.provider_id}{HANDLE_SEPARATOR}{self.native_id}"

  @classmethod
  def parse(cls, token: str) -> JobHandle:
    """Split on the first separator only; native ids may contain it."""
    provider_id, separator, native_id = (token or "").strip().partition(HANDLE_SEPARATOR)
    if not separator:
      raise JobHandleError("Job handle must look like 'provider::id'.")
    return cls(provider_id=provider_id, native_id=native_id)

  def __str__(self) -> str:
    return self.serialize()
