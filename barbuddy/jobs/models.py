"""Domain models for background jobs."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "done", "failed"]
WorkUnit = Callable[[], Awaitable[Any]]


@dataclass
class GenerationJob:
  """A queued unit of background work and its outcome."""

  job_id: str
  status: JobStatus
  created_at: float
  result: Any = None
  error: str | None = None
  started_at: float | None = None
  finished_at: float | None = None

  def status_view(self) -> dict[str, Any]:
    """Return the public status payload."""
    return {"status": self.status, "result": self.result, "error": self.error}
