"""Persistence models."""

from .usage import ApiUsageLog, UsageBucket

__all__ = ["ApiUsageLog", "UsageBucket"]
