"""Fuse visual identity, shot list and script into provider-ready video prompts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from app.ai.fitter import PromptFitter
from app.ai.prompts import FUSION_MESSAGE, FUSION_SYSTEM, SPLIT_FUSION_SYSTEM
from app.ai.providers.base import AIModel

logger = logging.getLogger(__name__)

_FUSION_MAX_TOKENS = 2000
_FUSION_TEMPERATURE = 0.4
_FINAL_FRAME_PREFIX = " Final frame: "
_OPENING_FRAME_PREFIX = "Opening frame: "
_MIN_MAX_CHARS = 100

_RULE_LINE = re.compile(r"^\s*([-*_=])(?:\s*\1){2,}\s*$")
_INLINE_RULE = re.compile(r"-{3,}|\*{3,}|_{3,}|={3,}")
_HEADING = re.compile(r"^\s*#+\s*")
_LIST_MARKER = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+")
_EMPHASIS = re.compile(r"\*+|_{2,}|`+")


class CompositionError(RuntimeError):
  """Raised when the text model cannot produce a usable composed prompt."""


@dataclass(frozen=True)
class ComposedPrompt:
  """One prompt, or two prompts for consecutive half-clips sharing a boundary frame."""

  parts: tuple[str, ...]
  continuity_anchor: str | None = None
  composed: bool = True
  usage: dict[str, int] | None = None

  @property
  def is_split(self) -> bool:
    return len(self.parts) == 2


def flatten_markup(text: str) -> str:
  """Strip markdown structure and join everything into one paragraph."""
  lines: list[str] = []
  for raw_line in text.splitlines():
    if _RULE_LINE.match(raw_line):
      continue
    line = _HEADING.sub("", raw_line)
    line = _LIST_MARKER.sub("", line)
    line = _INLINE_RULE.sub(" ", line)
    line = _EMPHASIS.sub("", line)
    line = line.replace("#", "")
    line = " ".join(line.split())
    if line:
      lines.append(line)
  return " ".join(lines)


def merge_usage(*usages: dict[str, int] | None) -> dict[str, int] | None:
  merged: dict[str, int] = {}
  for usage in usages:
    if not usage:
      continue
    for key, value in usage.items():
      merged[key] = merged.get(key, 0) + int(value or 0)
  return merged or None


def _format_seconds(seconds: float) -> str:
  return f"{seconds:g}"


class PromptCompositor:
  """Build the final generation prompt(s) for an ad.

  Durations below the split threshold yield one prompt. Longer ads yield two prompts whose boundary
  shots describe the same frame, since the second clip is seeded with the last frame of the first.
  """

  def __init__(self, model: AIModel | None, fitter: PromptFitter, *, split_threshold_seconds: int = 25, max_chars: int = 3000) -> None:
    if max_chars < _MIN_MAX_CHARS:
      raise ValueError(f"max_chars must be at least {_MIN_MAX_CHARS}.")
    self._model = model
    self._fitter = fitter
    self.split_threshold_seconds = split_threshold_seconds
    self.max_chars = max_chars

  @property
  def model_name(self) -> str | None:
    return self._model.name if self._model is not None else None

  async def compose(self, *, visual_identity: str | None, cinematic_breakdown: str | None, script: str | None, duration_seconds: float, raw_prompt: str) -> ComposedPrompt:
    """Compose the prompt(s) or return raw_prompt untouched when an input is missing.

    Raises CompositionError when the text model fails or returns nothing usable.
    """
    # Any missing input means the raw prompt goes out as is.
    visual_identity = (visual_identity or "").strip()
    cinematic_breakdown = (cinematic_breakdown or "").strip()
    script = (script or "").strip()
    if not (visual_identity and cinematic_breakdown and script):
      return ComposedPrompt(parts=(raw_prompt,), composed=False)

    if self._model is None:
      raise CompositionError("No text model configured for prompt composition.")

    # Short ads get one prompt, long ones two halves.
    message = FUSION_MESSAGE.format(visual_identity=visual_identity, cinematic_breakdown=cinematic_breakdown, script=script, duration=_format_seconds(duration_seconds))
    if duration_seconds < self.split_threshold_seconds:
      return await self._compose_single(message)
    return await self._compose_split(message, duration_seconds)

  async def _compose_single(self, message: str) -> ComposedPrompt:
    system = FUSION_SYSTEM.format(max_chars=self.max_chars)
    try:
      response = await self._model.generate(message, system=system, max_tokens=_FUSION_MAX_TOKENS, temperature=_FUSION_TEMPERATURE)
    except Exception as exc:
      raise CompositionError(f"Prompt fusion failed: {exc}") from exc

    # Flatten markdown into one paragraph.
    text = flatten_markup(response.content or "")
    if not text:
      raise CompositionError("Prompt fusion returned an empty prompt.")

    # Enforce the length cap.
    fitted = await self._fitter.fit(text, self.max_chars)
    final = flatten_markup(fitted.text)
    logger.info("Composed single prompt (%d chars, fit=%s)", len(final), fitted.strategy)
    return ComposedPrompt(parts=(final,), usage=merge_usage(response.usage, fitted.usage))

  async def _compose_split(self, message: str, duration_seconds: float) -> ComposedPrompt:
    # The anchor frame takes at most a third of the budget.
    anchor_cap = self.max_chars // 3
    part_chars = self.max_chars - anchor_cap - len(_OPENING_FRAME_PREFIX) - 1
    system = SPLIT_FUSION_SYSTEM.format(half_seconds=_format_seconds(duration_seconds / 2), anchor_chars=anchor_cap, part_chars=part_chars)
    try:
      response = await self._model.generate_json(message, system=system, max_tokens=_FUSION_MAX_TOKENS * 2, temperature=_FUSION_TEMPERATURE)
    except Exception as exc:
      raise CompositionError(f"Split prompt fusion failed: {exc}") from exc

    # All three fields are required.
    payload = response.content
    fields = {key: payload.get(key) for key in ("continuity_frame", "part_one", "part_two")}
    missing = [key for key, value in fields.items() if not isinstance(value, str) or not value.strip()]
    if missing:
      raise CompositionError(f"Split prompt fusion is missing {', '.join(missing)}.")

    anchor = flatten_markup(fields["continuity_frame"])[:anchor_cap].strip()
    if not anchor:
      raise CompositionError("Split prompt fusion returned an empty continuity frame.")

    # Fit each half to what is left after its anchor clause.
    first_budget = self.max_chars - len(_FINAL_FRAME_PREFIX) - len(anchor)
    second_budget = self.max_chars - len(_OPENING_FRAME_PREFIX) - len(anchor) - 1
    first = await self._fitter.fit(flatten_markup(fields["part_one"]), first_budget)
    second = await self._fitter.fit(flatten_markup(fields["part_two"]), second_budget)

    # Part one ends on the anchor frame and part two opens on it.
    part_one = f"{flatten_markup(first.text)}{_FINAL_FRAME_PREFIX}{anchor}".strip()
    part_two = f"{_OPENING_FRAME_PREFIX}{anchor} {flatten_markup(second.text)}".strip()
    logger.info("Composed split prompt (%d + %d chars, anchor %d chars)", len(part_one), len(part_two), len(anchor))
    return ComposedPrompt(parts=(part_one, part_two), continuity_anchor=anchor, usage=merge_usage(response.usage, first.usage, second.usage))
