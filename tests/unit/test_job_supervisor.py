from __future__ import annotations

import asyncio

import pytest

from app.jobs.supervisor import JobSupervisor, SupervisorPool, SupervisorSnapshot
from app.services.usage_guard import LimitReachedError
from app.services.videos import SubmissionReceipt
from app.video.models import GenerationRequest, JobHandle, JobStatus, NormalizedParameters, ProviderSubmissionError

HANDLE = JobHandle(provider_id="grok", native_id="req-1")
PARAMS = NormalizedParameters(provider="grok", model="grok-2-video", mode="text-to-video", duration_seconds=8, aspect_ratio="16:9", resolution="720p")


class ScriptedBackend:
  """Backend whose polls return the scripted statuses in order, repeating the last one."""

  def __init__(self, statuses=(), *, submit_error: Exception | None = None) -> None:
    self.statuses = list(statuses)
    self.submit_error = submit_error
    self.submits = 0
    self.polls: list[tuple[JobHandle, float | None]] = []

  async def submit(self, request: GenerationRequest) -> SubmissionReceipt:
    self.submits += 1
    if self.submit_error is not None:
      raise self.submit_error
    return SubmissionReceipt(handle=HANDLE, normalized=PARAMS, prompt_length=len(request.prompt), fit_strategy="unchanged", composed=False)

  async def poll(self, handle: JobHandle, *, duration_hint: float | None = None) -> JobStatus:
    self.polls.append((handle, duration_hint))
    status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
    if isinstance(status, Exception):
      raise status
    return status


async def no_sleep(seconds: float) -> None:
  await asyncio.sleep(0)


def _supervisor(backend: ScriptedBackend, updates: list[SupervisorSnapshot] | None = None, **kwargs) -> JobSupervisor:
  on_update = updates.append if updates is not None else None
  return JobSupervisor(backend, on_update=on_update, sleep=no_sleep, **kwargs)


@pytest.mark.anyio
async def test_run_submits_once_and_polls_until_ready() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued"), JobStatus.pending("processing"), JobStatus.ready("https://vidgen.x.ai/v.mp4", 8, "done")])
  updates: list[SupervisorSnapshot] = []
  snapshot = await _supervisor(backend, updates).run(GenerationRequest(prompt="a calm beach"))

  assert snapshot.state == "Ready"
  assert snapshot.result.url == "https://vidgen.x.ai/v.mp4"
  assert snapshot.attempts == 3
  assert backend.submits == 1
  assert backend.polls == [(HANDLE, 8.0)] * 3
  assert [u.state for u in updates][:2] == ["Submitted", "Polling"]
  assert [u.raw_status for u in updates[2:]] == ["queued", "processing", "done"]


@pytest.mark.anyio
async def test_provider_failure_is_terminal() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued"), JobStatus.failed("content policy", "failed")])
  snapshot = await _supervisor(backend).run(GenerationRequest(prompt="p"))
  assert snapshot.state == "Failed"
  assert snapshot.error == "content policy"
  assert snapshot.attempts == 2


@pytest.mark.anyio
async def test_attempt_ceiling_times_out_without_further_polls() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued")])
  snapshot = await _supervisor(backend, max_attempts=4).run(GenerationRequest(prompt="p"))
  assert snapshot.state == "TimedOut"
  assert snapshot.attempts == 4
  assert len(backend.polls) == 4
  assert "4 status checks" in snapshot.error


@pytest.mark.anyio
async def test_limit_reached_at_submit_never_polls() -> None:
  backend = ScriptedBackend([JobStatus.pending()], submit_error=LimitReachedError("video", limit=3, used=3))
  snapshot = await _supervisor(backend).run(GenerationRequest(prompt="p"))
  assert snapshot.state == "LimitReached"
  assert (snapshot.limit, snapshot.used) == (3, 3)
  assert snapshot.handle is None
  assert backend.polls == []


@pytest.mark.anyio
async def test_submission_rejection_is_failed() -> None:
  backend = ScriptedBackend([JobStatus.pending()], submit_error=ProviderSubmissionError("grok", "xAI returned HTTP 400", status_code=400))
  snapshot = await _supervisor(backend).run(GenerationRequest(prompt="p"))
  assert snapshot.state == "Failed"
  assert "HTTP 400" in snapshot.error
  assert backend.polls == []


@pytest.mark.anyio
async def test_poll_exception_counts_as_pending_attempt() -> None:
  backend = ScriptedBackend([RuntimeError("connection reset"), JobStatus.ready("https://v/x.mp4", None, "done")])
  snapshot = await _supervisor(backend).watch(HANDLE)
  assert snapshot.state == "Ready"
  assert snapshot.attempts == 2
  assert backend.polls[0] == (HANDLE, None)


@pytest.mark.anyio
async def test_cancel_stops_polling_and_state_writes() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued")])
  updates: list[SupervisorSnapshot] = []

  def cancel_after_first_poll(snapshot: SupervisorSnapshot) -> None:
    updates.append(snapshot)
    if snapshot.attempts == 1:
      supervisor.cancel()

  supervisor = JobSupervisor(backend, on_update=cancel_after_first_poll, sleep=no_sleep)
  snapshot = await supervisor.watch(HANDLE)

  assert supervisor.cancelled
  assert snapshot.state == "Polling"
  assert snapshot.attempts == 1
  assert len(backend.polls) == 1
  assert updates[-1].attempts == 1


@pytest.mark.anyio
async def test_terminal_supervisor_ignores_further_runs() -> None:
  backend = ScriptedBackend([JobStatus.ready("https://v/x.mp4", 5, "done")])
  supervisor = _supervisor(backend)
  first = await supervisor.run(GenerationRequest(prompt="p"))
  second = await supervisor.run(GenerationRequest(prompt="p"))
  third = await supervisor.watch(HANDLE)
  assert first is second is third
  assert backend.submits == 1
  assert len(backend.polls) == 1


@pytest.mark.anyio
async def test_concurrent_watches_share_one_loop() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued")])
  supervisor = _supervisor(backend, max_attempts=10)

  first, second = await asyncio.gather(supervisor.watch(HANDLE), supervisor.watch(HANDLE))

  assert first is second
  assert first.state == "TimedOut"
  assert first.attempts == 10
  assert len(backend.polls) == 10


@pytest.mark.anyio
async def test_watch_during_run_waits_for_the_running_loop() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued"), JobStatus.pending("processing"), JobStatus.ready("https://v/x.mp4", 8, "done")])
  supervisor = _supervisor(backend)

  ran, watched = await asyncio.gather(supervisor.run(GenerationRequest(prompt="p")), supervisor.watch(HANDLE))

  assert ran is watched
  assert ran.state == "Ready"
  assert backend.submits == 1
  assert backend.polls == [(HANDLE, 8.0)] * 3


def test_rejects_invalid_configuration() -> None:
  with pytest.raises(ValueError):
    JobSupervisor(ScriptedBackend(), poll_interval=-1)
  with pytest.raises(ValueError):
    JobSupervisor(ScriptedBackend(), max_attempts=0)


@pytest.mark.anyio
async def test_pool_runs_one_loop_per_handle() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued"), JobStatus.ready("https://v/x.mp4", 5, "done")])
  pool = SupervisorPool(backend, sleep=no_sleep)

  first = pool.watch(HANDLE)
  second = pool.watch(JobHandle.parse("grok::req-1"))
  assert first is second
  assert HANDLE in pool and len(pool) == 1

  snapshot = await first
  await asyncio.sleep(0)
  assert snapshot.state == "Ready"
  assert len(backend.polls) == 2
  assert HANDLE in pool
  assert pool.snapshot(HANDLE) is snapshot


@pytest.mark.anyio
async def test_pool_rewatch_of_finished_job_does_not_poll_again() -> None:
  backend = ScriptedBackend([JobStatus.ready("https://v/x.mp4", 5, "done")])
  pool = SupervisorPool(backend, sleep=no_sleep)

  first = await pool.watch(HANDLE)
  await asyncio.sleep(0)
  second = await pool.watch(HANDLE)

  assert first is second
  assert first.state == "Ready"
  assert len(backend.polls) == 1


@pytest.mark.anyio
async def test_pool_cancel_stops_the_loop() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued")])
  pool = SupervisorPool(backend, sleep=no_sleep)
  task = pool.watch(HANDLE)
  await asyncio.sleep(0)

  assert pool.cancel(HANDLE) is True
  assert pool.cancel(HANDLE) is False
  await asyncio.gather(task, return_exceptions=True)
  assert task.cancelled() or task.result().state != "Ready"
  assert HANDLE not in pool


@pytest.mark.anyio
async def test_pool_cancel_all_awaits_every_loop() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued")])
  pool = SupervisorPool(backend, sleep=no_sleep)
  tasks = [pool.watch(JobHandle(provider_id="grok", native_id=f"req-{i}")) for i in range(3)]
  await pool.cancel_all()
  assert all(task.done() for task in tasks)
  assert len(pool) == 0


@pytest.mark.anyio
async def test_pool_cancelled_handle_can_be_watched_again() -> None:
  backend = ScriptedBackend([JobStatus.pending("queued"), JobStatus.ready("https://v/x.mp4", 5, "done")])
  pool = SupervisorPool(backend, sleep=no_sleep)
  cancelled = pool.watch(HANDLE)
  pool.cancel(HANDLE)
  await asyncio.gather(cancelled, return_exceptions=True)

  snapshot = await pool.watch(HANDLE)

  assert snapshot.state == "Ready"
  assert HANDLE in pool
