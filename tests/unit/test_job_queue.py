from __future__ import annotations

import asyncio
import time

import pytest

from barbuddy.jobs.queue import JobQueue


@pytest.mark.anyio
async def test_jobs_run_in_fifo_order_with_gap() -> None:
  delay = 0.05
  queue = JobQueue(delay_seconds=delay)
  spans: list[tuple[str, float, float]] = []

  def make(name: str):
    async def work() -> str:
      started = time.monotonic()
      # Each job takes real time so the gap is measured from its finish.
      await asyncio.sleep(0.02)
      spans.append((name, started, time.monotonic()))
      return name

    return work

  ids = [queue.enqueue(make(name)) for name in ("a", "b", "c")]
  assert queue.running
  await queue.join()

  assert [name for name, _, _ in spans] == ["a", "b", "c"]
  for (_, _, finished), (_, next_started, _) in zip(spans, spans[1:], strict=False):
    assert next_started - finished >= delay * 0.9
  assert [queue.get_status(job_id)["result"] for job_id in ids] == ["a", "b", "c"]
  queue.close()


@pytest.mark.anyio
async def test_failure_is_recorded_and_queue_keeps_draining() -> None:
  queue = JobQueue(delay_seconds=0)

  async def boom() -> None:
    raise RuntimeError("extraction exploded")

  async def fine() -> dict[str, int]:
    return {"questionsExtracted": 4}

  failed_id = queue.enqueue(boom)
  ok_id = queue.enqueue(fine)
  await queue.join()

  assert queue.get_status(failed_id) == {"status": "failed", "result": None, "error": "extraction exploded"}
  assert queue.get_status(ok_id) == {"status": "done", "result": {"questionsExtracted": 4}, "error": None}
  assert not queue.running
  queue.close()


@pytest.mark.anyio
async def test_status_moves_from_pending_to_processing_to_done() -> None:
  queue = JobQueue(delay_seconds=0)
  gate = asyncio.Event()

  async def blocker() -> str:
    await gate.wait()
    return "ok"

  async def second() -> str:
    return "second"

  first_id = queue.enqueue(blocker)
  second_id = queue.enqueue(second)
  assert queue.get_status(first_id)["status"] == "pending"

  await asyncio.sleep(0)
  assert queue.get_status(first_id)["status"] == "processing"
  assert queue.get_status(second_id)["status"] == "pending"
  assert queue.queue_length == 1

  gate.set()
  await queue.join()
  assert queue.get_status(first_id)["status"] == "done"
  assert queue.get_status(second_id)["result"] == "second"
  assert queue.queue_length == 0
  queue.close()


@pytest.mark.anyio
async def test_finished_jobs_expire_after_retention() -> None:
  queue = JobQueue(delay_seconds=0, retention_seconds=0.01)

  async def work() -> int:
    return 1

  job_id = queue.enqueue(work)
  await queue.join()
  assert queue.get_status(job_id) is not None
  await asyncio.sleep(0.05)
  assert queue.get_status(job_id) is None
  queue.close()


@pytest.mark.anyio
async def test_unknown_job_id_returns_none() -> None:
  queue = JobQueue()
  assert queue.get_status("job_missing") is None
  assert queue.get_job("job_missing") is None


@pytest.mark.anyio
async def test_second_enqueue_reuses_running_consumer() -> None:
  queue = JobQueue(delay_seconds=0)
  calls: list[int] = []

  async def work() -> None:
    calls.append(1)

  queue.enqueue(work)
  consumer = queue._consumer
  queue.enqueue(work)
  assert queue._consumer is consumer
  await queue.join()
  assert len(calls) == 2
  queue.close()
