"""Snapping helpers shared by the provider adapters."""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from typing import Any

_RATIO_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*[:x/]\s*(\d+(?:\.\d+)?)\s*$")
_RESOLUTION_PATTERN = re.compile(r"^\s*(\d+)\s*p?\s*$", re.IGNORECASE)


def _to_float(value: Any) -> float | None:
  if isinstance(value, bool):
    return None
  try:
    number = float(value)
  except (TypeError, ValueError):
    return None
  if math.isnan(number) or math.isinf(number):
    return None
  return number


def _round_half_up(number: float) -> int:
  return math.floor(number + 0.5)


def clamp_duration(value: Any, *, minimum: int, maximum: int, default: int) -> int:
  """Round to whole seconds and clamp into [minimum, maximum]."""
  number = _to_float(value)
  if number is None:
    return default
  return max(minimum, min(maximum, _round_half_up(number)))


def snap_duration_step(value: Any, *, step: int, minimum: int, maximum: int, default: int) -> int:
  """Snap to the nearest multiple of step inside [minimum, maximum]."""
  number = _to_float(value)
  if number is None:
    return default
  snapped = _round_half_up(number / step) * step
  return max(minimum, min(maximum, snapped))


def clamp_float(value: Any, *, minimum: float, maximum: float, default: float) -> float:
  number = _to_float(value)
  if number is None:
    return default
  return max(minimum, min(maximum, number))


def _ratio_value(ratio: str) -> float | None:
  match = _RATIO_PATTERN.match(ratio)
  if not match:
    return None
  width, height = float(match.group(1)), float(match.group(2))
  if width <= 0 or height <= 0:
    return None
  return width / height


def snap_aspect_ratio(value: Any, allowed: Sequence[str], default: str) -> str:
  """Return value when allowed, else the allowed ratio numerically closest to it."""
  if not isinstance(value, str) or not value.strip():
    return default
  candidate = value.strip().replace(" ", "")
  if candidate in allowed:
    return candidate
  requested = _ratio_value(candidate)
  if requested is None:
    return default
  # Compare on a log scale so 2:1 and 1:2 are equally far from 1:1.
  return min(allowed, key=lambda ratio: abs(math.log(_ratio_value(ratio) / requested)))


def snap_resolution(value: Any, allowed: Sequence[str], default: str) -> str:
  """Match tiers like '720p' by their line count, picking the nearest allowed tier."""
  if not isinstance(value, str) or not value.strip():
    return default
  candidate = value.strip().lower()
  if candidate in allowed:
    return candidate
  match = _RESOLUTION_PATTERN.match(candidate)
  if not match:
    return default
  requested = int(match.group(1))
  return min(allowed, key=lambda tier: abs(int(tier.rstrip("p")) - requested))
