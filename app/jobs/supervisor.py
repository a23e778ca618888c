"""Caller-side polling loop that drives one video job to a terminal state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any, Final, Literal, Protocol

from app.services.usage_guard import LimitReachedError
from app.services.videos import SubmissionReceipt
from app.video.models import GenerationRequest, JobHandle, JobStatus, ProviderSubmissionError, VideoResult

logger = logging.getLogger(__name__)

SupervisorState = Literal["Idle", "Submitted", "Polling", "Ready", "Failed", "TimedOut", "LimitReached"]
TERMINAL_STATES: Final[frozenset[str]] = frozenset({"Ready", "Failed", "TimedOut", "LimitReached"})

DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 3.0
DEFAULT_MAX_ATTEMPTS: Final[int] = 100
TIMED_OUT_MESSAGE: Final[str] = "Stopped waiting after {attempts} status checks; the provider may still finish the video."


class JobBackend(Protocol):
  """Where jobs are submitted and polled: in-process service or the HTTP API."""

  async def submit(self, request: GenerationRequest) -> SubmissionReceipt: ...

  async def poll(self, handle: JobHandle, *, duration_hint: float | None = None) -> JobStatus: ...


@dataclass(frozen=True)
class SupervisorSnapshot:
  """Immutable view of the supervisor after a state write."""

  state: SupervisorState = "Idle"
  handle: JobHandle | None = None
  attempts: int = 0
  raw_status: str | None = None
  result: VideoResult | None = None
  error: str | None = None
  receipt: SubmissionReceipt | None = None
  limit: int | None = None
  used: int | None = None
  debug: dict[str, Any] = field(default_factory=dict)

  @property
  def is_terminal(self) -> bool:
    return self.state in TERMINAL_STATES


UpdateCallback = Callable[[SupervisorSnapshot], None]
SleepFunc = Callable[[float], Awaitable[Any]]


class JobSupervisor:
  """Submit once, then poll at a fixed interval until Ready, Failed or the attempt ceiling.

  Polls are strictly sequential: overlapping `run`/`watch` calls share one loop, the later caller
  waiting for the loop in flight. Terminal states are final: later `run`/`watch` calls return the
  terminal snapshot without touching the backend. After `cancel()` no further polls are issued and
  no further state is written; a poll response that lands after cancellation is dropped.
  """

  def __init__(
    self,
    backend: JobBackend,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    on_update: UpdateCallback | None = None,
    sleep: SleepFunc = asyncio.sleep,
  ) -> None:
    if poll_interval < 0:
      raise ValueError("poll_interval must be >= 0.")
    if max_attempts < 1:
      raise ValueError("max_attempts must be >= 1.")
    self._backend = backend
    self._poll_interval = poll_interval
    self._max_attempts = max_attempts
    self._on_update = on_update
    self._sleep = sleep
    self._snapshot = SupervisorSnapshot()
    self._cancelled = False
    self._loop_lock = asyncio.Lock()

  @property
  def snapshot(self) -> SupervisorSnapshot:
    return self._snapshot

  @property
  def cancelled(self) -> bool:
    return self._cancelled

  def cancel(self) -> None:
    self._cancelled = True

  def _write(self, **changes: Any) -> None:
    if self._cancelled or self._snapshot.is_terminal:
      return
    self._snapshot = replace(self._snapshot, **changes)
    if self._on_update is not None:
      self._on_update(self._snapshot)

  async def run(self, request: GenerationRequest) -> SupervisorSnapshot:
    """Submit the request, then watch the resulting handle."""
    async with self._loop_lock:
      # Never submit twice.
      if self._snapshot.is_terminal or self._cancelled:
        return self._snapshot
      if self._snapshot.handle is not None:
        return await self._poll_until_done(self._snapshot.handle)

      # Submission errors end the job without polling.
      try:
        receipt = await self._backend.submit(request)
      except LimitReachedError as exc:
        self._write(state="LimitReached", error=str(exc), limit=exc.limit, used=exc.used)
        return self._snapshot
      except ProviderSubmissionError as exc:
        logger.warning("Video submission failed: %s", exc)
        self._write(state="Failed", error=str(exc))
        return self._snapshot

      self._write(state="Submitted", handle=receipt.handle, receipt=receipt)
      return await self._poll_until_done(receipt.handle)

  async def watch(self, handle: JobHandle) -> SupervisorSnapshot:
    """Poll an existing handle; usable without a prior `run`."""
    async with self._loop_lock:
      return await self._poll_until_done(handle)

  async def _poll_until_done(self, handle: JobHandle) -> SupervisorSnapshot:
    # Callers hold the loop lock; a waiter that got it late sees the finished snapshot here.
    if self._snapshot.is_terminal or self._cancelled:
      return self._snapshot
    if self._snapshot.state == "Idle":
      self._write(state="Submitted", handle=handle)

    receipt = self._snapshot.receipt
    duration_hint = float(receipt.normalized.duration_seconds) if receipt is not None else None
    self._write(state="Polling")

    while self._snapshot.attempts < self._max_attempts:
      await self._sleep(self._poll_interval)
      if self._cancelled:
        return self._snapshot

      # A status check that raises is reported as Pending.
      try:
        status = await self._backend.poll(handle, duration_hint=duration_hint)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Status check failed handle=%s attempt=%d: %s", handle, self._snapshot.attempts + 1, exc)
        status = JobStatus.pending("poll_error", error=str(exc))

      # Drop responses that land after cancellation.
      if self._cancelled:
        return self._snapshot

      # Ready and Failed end the loop; anything else counts as one pending attempt.
      attempts = self._snapshot.attempts + 1
      if status.kind == "Ready":
        self._write(state="Ready", attempts=attempts, raw_status=status.raw_status, result=status.result, debug=status.debug)
        logger.info("Video ready handle=%s attempts=%d", handle, attempts)
        return self._snapshot
      if status.kind == "Failed":
        self._write(state="Failed", attempts=attempts, raw_status=status.raw_status, error=status.error, debug=status.debug)
        logger.info("Video failed handle=%s attempts=%d reason=%s", handle, attempts, status.error)
        return self._snapshot
      self._write(attempts=attempts, raw_status=status.raw_status, debug=status.debug)

    logger.info("Gave up polling handle=%s after %d attempts", handle, self._snapshot.attempts)
    self._write(state="TimedOut", error=TIMED_OUT_MESSAGE.format(attempts=self._snapshot.attempts))
    return self._snapshot


def _ended_terminal(task: asyncio.Task[SupervisorSnapshot]) -> bool:
  if not task.done() or task.cancelled() or task.exception() is not None:
    return False
  return task.result().is_terminal


class SupervisorPool:
  """At most one polling loop per job handle.

  Loops that end in a terminal state stay registered, so watching the same handle again returns the
  finished task instead of polling the provider. `cancel`/`cancel_all` drop entries either way.
  """

  def __init__(self, backend: JobBackend, *, poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS, max_attempts: int = DEFAULT_MAX_ATTEMPTS, sleep: SleepFunc = asyncio.sleep) -> None:
    self._backend = backend
    self._poll_interval = poll_interval
    self._max_attempts = max_attempts
    self._sleep = sleep
    self._active: dict[str, tuple[JobSupervisor, asyncio.Task[SupervisorSnapshot]]] = {}

  def __len__(self) -> int:
    return len(self._active)

  def __contains__(self, handle: JobHandle) -> bool:
    return handle.serialize() in self._active

  def snapshot(self, handle: JobHandle) -> SupervisorSnapshot | None:
    entry = self._active.get(handle.serialize())
    return entry[0].snapshot if entry is not None else None

  def watch(self, handle: JobHandle, *, on_update: UpdateCallback | None = None) -> asyncio.Task[SupervisorSnapshot]:
    """Start watching handle, or return the task already watching (or done watching) it."""
    key = handle.serialize()
    existing = self._active.get(key)
    if existing is not None and (not existing[1].done() or _ended_terminal(existing[1])):
      return existing[1]

    supervisor = JobSupervisor(self._backend, poll_interval=self._poll_interval, max_attempts=self._max_attempts, on_update=on_update, sleep=self._sleep)
    task = asyncio.create_task(supervisor.watch(handle), name=f"video-poll:{key}")
    self._active[key] = (supervisor, task)
    task.add_done_callback(lambda _: self._forget_unfinished(key, task))
    return task

  def _forget_unfinished(self, key: str, task: asyncio.Task[SupervisorSnapshot]) -> None:
    # Keep terminal results; drop loops that were cancelled or crashed.
    entry = self._active.get(key)
    if entry is not None and entry[1] is task and not _ended_terminal(task):
      del self._active[key]

  def cancel(self, handle: JobHandle) -> bool:
    entry = self._active.pop(handle.serialize(), None)
    if entry is None:
      return False
    supervisor, task = entry
    supervisor.cancel()
    task.cancel()
    return True

  async def cancel_all(self) -> None:
    entries = list(self._active.values())
    self._active.clear()
    for supervisor, task in entries:
      supervisor.cancel()
      task.cancel()
    if entries:
      await asyncio.gather(*(task for _, task in entries), return_exceptions=True)
