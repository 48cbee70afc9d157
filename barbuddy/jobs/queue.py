"""Single-consumer background job queue.

Slow provider-bound work (document summarisation, past-bar extraction) is
serialised here so HTTP handlers can return a job id immediately and the
aggregate request rate to the provider stays bounded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from typing import Any

from barbuddy.ai.backoff import Sleeper
from barbuddy.jobs.models import GenerationJob, WorkUnit
from barbuddy.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

DEFAULT_JOB_DELAY_SECONDS = 3.0
DEFAULT_RETENTION_SECONDS = 30 * 60


class JobQueue:
  """FIFO queue drained by one consumer task with a cool-down between jobs."""

  def __init__(self, *, delay_seconds: float = DEFAULT_JOB_DELAY_SECONDS, retention_seconds: float = DEFAULT_RETENTION_SECONDS, sleep: Sleeper = asyncio.sleep, clock: Callable[[], float] = time.time, id_factory: Callable[[], str] = generate_job_id) -> None:
    self._delay = delay_seconds
    self._retention = retention_seconds
    self._sleep = sleep
    self._clock = clock
    self._id_factory = id_factory
    self._jobs: dict[str, GenerationJob] = {}
    self._pending: deque[tuple[str, WorkUnit]] = deque()
    self._expiry: dict[str, asyncio.TimerHandle] = {}
    self._running = False
    self._consumer: asyncio.Task[None] | None = None

  @property
  def running(self) -> bool:
    return self._running

  @property
  def queue_length(self) -> int:
    """Jobs waiting to start (excludes the one being processed)."""
    return len(self._pending)

  def enqueue(self, work: WorkUnit) -> str:
    """Register ``work`` as pending, wake the consumer, and return its job id."""
    job_id = self._id_factory()
    self._jobs[job_id] = GenerationJob(job_id=job_id, status="pending", created_at=self._clock())
    self._pending.append((job_id, work))
    logger.info("Job %s queued (queue length %d)", job_id, len(self._pending))
    self._ensure_consumer()
    return job_id

  def get_status(self, job_id: str) -> dict[str, Any] | None:
    """Return ``{status, result, error}`` or ``None`` for unknown or expired jobs."""
    job = self._jobs.get(job_id)
    if job is None:
      return None
    return job.status_view()

  def get_job(self, job_id: str) -> GenerationJob | None:
    return self._jobs.get(job_id)

  def _ensure_consumer(self) -> None:
    # Check-and-set happens before any await, so a second trigger is a no-op.
    if self._running or not self._pending:
      return
    self._running = True
    self._consumer = asyncio.get_running_loop().create_task(self._consume())

  async def _consume(self) -> None:
    try:
      while self._pending:
        job_id, work = self._pending.popleft()
        job = self._jobs.get(job_id)
        if job is None:
          continue
        await self._run_one(job, work)
        if self._pending:
          await self._sleep(self._delay)
    finally:
      self._running = False

  async def _run_one(self, job: GenerationJob, work: WorkUnit) -> None:
    """Run one job to completion, recording its result or error, then start its retention timer."""
    job.status = "processing"
    job.started_at = self._clock()
    logger.info("Job %s: processing (queue remaining: %d)", job.job_id, len(self._pending))
    try:
      job.result = await work()
      job.status = "done"
    except Exception as exc:  # noqa: BLE001
      # Failures are recorded for the status reader; the queue keeps draining.
      job.error = str(exc) or type(exc).__name__
      job.status = "failed"
      logger.error("Job %s failed: %s", job.job_id, job.error, exc_info=True)
    job.finished_at = self._clock()
    self._schedule_expiry(job.job_id)

  def _schedule_expiry(self, job_id: str) -> None:
    loop = asyncio.get_running_loop()
    self._expiry[job_id] = loop.call_later(self._retention, self._expire, job_id)

  def _expire(self, job_id: str) -> None:
    self._jobs.pop(job_id, None)
    self._expiry.pop(job_id, None)

  async def join(self) -> None:
    """Wait until the consumer has drained every queued job."""
    while self._consumer is not None and not self._consumer.done():
      await asyncio.shield(self._consumer)

  def close(self) -> None:
    """Cancel pending expiry timers; used on application shutdown."""
    for handle in self._expiry.values():
      handle.cancel()
    self._expiry.clear()
