"""Monthly usage limits consulted before admitting generation jobs."""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.schema.usage import UsageBucket

logger = logging.getLogger(__name__)

UNLIMITED = -1


class LimitReachedError(RuntimeError):
  """Raised when a user has no remaining allowance for a resource kind."""

  def __init__(self, kind: str, *, limit: int, used: int) -> None:
    super().__init__(f"Monthly {kind} limit of {limit} reached.")
    self.kind = kind
    self.limit = limit
    self.used = used


class UsageGuardUnavailableError(RuntimeError):
  """Raised when the usage store cannot be read; admission fails closed."""


@dataclass(frozen=True)
class UsageDecision:
  """Result of a limit check. `limit` and `remaining` are -1 when unlimited."""

  allowed: bool
  remaining: int
  limit: int
  used: int


class UsageGuard(Protocol):
  async def check_limit(self, user_id: str, kind: str) -> UsageDecision: ...

  async def increment(self, user_id: str, kind: str) -> None: ...


def month_start(now: datetime.datetime) -> datetime.date:
  """Return the first day of the UTC month containing now."""
  if now.tzinfo is None:
    raise ValueError("now must be timezone-aware (UTC).")
  return now.astimezone(datetime.UTC).date().replace(day=1)


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


@asynccontextmanager
async def _usage_transaction(session: AsyncSession):
  """Use a SAVEPOINT when the session already autobegan a transaction."""
  if session.in_transaction():
    async with session.begin_nested():
      yield
    return
  async with session.begin():
    yield


def decide(limit: int, used: int) -> UsageDecision:
  if limit == UNLIMITED:
    return UsageDecision(allowed=True, remaining=UNLIMITED, limit=UNLIMITED, used=used)
  remaining = max(limit - used, 0)
  return UsageDecision(allowed=remaining > 0, remaining=remaining, limit=limit, used=used)


class QuotaUsageGuard:
  """Usage guard backed by the usage_buckets table, one row per user, kind and month."""

  def __init__(self, session: AsyncSession, limits: Mapping[str, int], *, default_limit: int = 0) -> None:
    self._session = session
    self._limits = dict(limits)
    self._default_limit = default_limit

  def limit_for(self, kind: str) -> int:
    return int(self._limits.get(kind, self._default_limit))

  async def check_limit(self, user_id: str, kind: str) -> UsageDecision:
    limit = self.limit_for(kind)
    start = month_start(_utc_now())
    stmt = select(UsageBucket.used).where(UsageBucket.user_id == user_id, UsageBucket.kind == kind, UsageBucket.period_start == start)
    try:
      result = await self._session.execute(stmt)
    except SQLAlchemyError as exc:
      logger.error("Usage check failed user_id=%s kind=%s", user_id, kind, exc_info=True)
      raise UsageGuardUnavailableError("Usage store unavailable.") from exc

    used = int(result.scalar_one_or_none() or 0)
    return decide(limit, used)

  async def increment(self, user_id: str, kind: str) -> None:
    """Add one to the current month's bucket, creating it when missing."""
    now = _utc_now()
    start = month_start(now)
    try:
      used = await self._increment_locked(user_id, kind, start, now)
    except IntegrityError:
      # A concurrent first increment created the bucket; the row now exists to lock.
      await self._session.rollback()
      used = await self._increment_locked(user_id, kind, start, now)
    await self._session.commit()
    logger.info("Usage incremented user_id=%s kind=%s used=%s", user_id, kind, used)

  async def _increment_locked(self, user_id: str, kind: str, start: datetime.date, now: datetime.datetime) -> int:
    async with _usage_transaction(self._session):
      # Lock the bucket row so concurrent submissions serialize on it.
      stmt = select(UsageBucket).where(UsageBucket.user_id == user_id, UsageBucket.kind == kind, UsageBucket.period_start == start).with_for_update()
      result = await self._session.execute(stmt)
      bucket = result.scalar_one_or_none()
      if bucket is None:
        bucket = UsageBucket(id=uuid.uuid4(), user_id=user_id, kind=kind, period_start=start, used=0, updated_at=now)
        self._session.add(bucket)
        await self._session.flush()

      bucket.used = int(bucket.used) + 1
      bucket.updated_at = now
      await self._session.flush()
      return bucket.used
