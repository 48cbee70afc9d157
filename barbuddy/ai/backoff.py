"""Data-driven retry schedule and the executor that walks it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class ScheduleStep:
  """One attempt: which model tier to call and how long to wait before calling it."""

  tier: str
  delay_before: float


@dataclass(frozen=True)
class RetrySchedule:
  """Ordered attempts consumed by ``run_with_schedule``."""

  steps: tuple[ScheduleStep, ...]

  def __post_init__(self) -> None:
    if not self.steps:
      raise ValueError("A retry schedule needs at least one step.")

  def __len__(self) -> int:
    return len(self.steps)

  @property
  def delays(self) -> list[float]:
    """Return the wait before each attempt, in order."""
    return [step.delay_before for step in self.steps]

  @classmethod
  def tiered(cls, primary: str, fallback: str) -> RetrySchedule:
    """Two attempts on the primary tier, then two on the cheaper fallback tier."""
    return cls(steps=(ScheduleStep(primary, 0.0), ScheduleStep(primary, 20.0), ScheduleStep(fallback, 0.0), ScheduleStep(fallback, 60.0)))


class RetryableAttemptError(Exception):
  """Raised by an attempt to ask the executor for the next scheduled step."""


async def run_with_schedule(attempt: Callable[[ScheduleStep, int], Awaitable[T]], schedule: RetrySchedule, *, sleep: Sleeper = asyncio.sleep, on_exhausted: Callable[[RetryableAttemptError], Exception] | None = None) -> T:
  """Run ``attempt`` for each step until it returns.

  ``attempt`` signals a transient failure by raising ``RetryableAttemptError``;
  any other exception propagates immediately. When the final step is also
  retryable, ``on_exhausted`` maps the last error to the exception raised.
  """
  last_error: RetryableAttemptError | None = None
  total = len(schedule)

  for index, step in enumerate(schedule.steps):
    if step.delay_before > 0:
      logger.warning("Attempt %d/%d: waiting %.0fs before calling %s", index + 1, total, step.delay_before, step.tier)
      await sleep(step.delay_before)
    elif index > 0:
      logger.warning("Attempt %d/%d: switching to %s", index + 1, total, step.tier)

    try:
      return await attempt(step, index)
    except RetryableAttemptError as exc:
      last_error = exc

  if last_error is None:
    raise RuntimeError("retry schedule finished without running an attempt")
  if on_exhausted is not None:
    raise on_exhausted(last_error) from last_error
  raise last_error
