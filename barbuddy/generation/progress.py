"""Generation run state and the observer registry that streams it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
  """Snapshot of a generation run pushed to subscribers."""

  done: int
  total: int
  current: str
  running: bool
  finished: bool
  errors: int

  def as_dict(self) -> dict[str, Any]:
    return {"done": self.done, "total": self.total, "current": self.current, "running": self.running, "finished": self.finished, "errors": self.errors}


@dataclass
class GenerationState:
  """Mutable state of the current (or last) pre-generation run."""

  running: bool = False
  total: int = 0
  done: int = 0
  current: str = ""
  errors: list[dict[str, str]] = field(default_factory=list)
  started_at: str | None = None
  finished_at: str | None = None

  def reset(self, total: int, started_at: str) -> None:
    self.running = True
    self.total = total
    self.done = 0
    self.current = ""
    self.errors = []
    self.started_at = started_at
    self.finished_at = None

  def snapshot(self) -> ProgressEvent:
    return ProgressEvent(done=self.done, total=self.total, current=self.current, running=self.running, finished=bool(self.finished_at) and not self.running, errors=len(self.errors))

  def as_dict(self) -> dict[str, Any]:
    return {"running": self.running, "total": self.total, "done": self.done, "current": self.current, "errors": list(self.errors), "startedAt": self.started_at, "finishedAt": self.finished_at}


Listener = Callable[[ProgressEvent], None]


class ProgressBroadcaster:
  """Fan progress events out to any number of listeners."""

  def __init__(self) -> None:
    self._listeners: list[Listener] = []

  def subscribe(self, listener: Listener) -> Callable[[], None]:
    """Register ``listener`` and return a callable that unsubscribes it."""
    self._listeners.append(listener)
    return lambda: self.unsubscribe(listener)

  def unsubscribe(self, listener: Listener) -> None:
    if listener in self._listeners:
      self._listeners.remove(listener)

  @property
  def subscriber_count(self) -> int:
    return len(self._listeners)

  def publish(self, event: ProgressEvent) -> None:
    """Deliver ``event`` to every listener; one failing listener never blocks the rest."""
    for listener in list(self._listeners):
      try:
        listener(event)
      except Exception:  # noqa: BLE001
        logger.warning("Progress listener %r failed", listener, exc_info=True)


class QueueListener:
  """Listener that buffers events in an asyncio queue for a streaming response."""

  def __init__(self, maxsize: int = 100) -> None:
    self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)

  def __call__(self, event: ProgressEvent) -> None:
    # Slow consumers lose the oldest snapshot; each event is a full state snapshot.
    if self.queue.full():
      self.queue.get_nowait()
    self.queue.put_nowait(event)
