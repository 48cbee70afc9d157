"""Pre-generation engine: fill the content cache one syllabus topic at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from barbuddy.ai.backoff import Sleeper
from barbuddy.ai.prompts import build_topic_prompt
from barbuddy.ai.structured import StructuredInvoker
from barbuddy.generation.progress import GenerationState, ProgressBroadcaster, ProgressEvent
from barbuddy.schema.knowledge import SUBJECT_KEYS, TopicContent, utc_now_iso
from barbuddy.storage.knowledge_base import ContentCache, KnowledgeBase

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_DELAY_SECONDS = 0.6
TOPIC_MAX_TOKENS = 4096

NO_MATERIALS_MESSAGE = "No reference materials uploaded for this subject yet. Upload reference materials for this subject first."
GENERATION_FAILED_MESSAGE = "Content could not be generated for this topic. Retry generation."


@dataclass(frozen=True)
class TopicTask:
  """One unit of the generation queue."""

  subject_key: str
  subject_name: str
  topic_name: str
  subtopics: tuple[str, ...] = field(default_factory=tuple)

  @property
  def label(self) -> str:
    return f"{self.subject_name} → {self.topic_name}"


class PreGenerationEngine:
  """Run structured generation per topic with progress events and per-topic fault isolation."""

  def __init__(self, *, structured: StructuredInvoker, knowledge: KnowledgeBase, content: ContentCache, broadcaster: ProgressBroadcaster, state: GenerationState | None = None, topic_delay_seconds: float = DEFAULT_TOPIC_DELAY_SECONDS, sleep: Sleeper = asyncio.sleep) -> None:
    self._structured = structured
    self._knowledge = knowledge
    self._content = content
    self._broadcaster = broadcaster
    self._state = state or GenerationState()
    self._delay = topic_delay_seconds
    self._sleep = sleep
    self._task: asyncio.Task[None] | None = None

  @property
  def state(self) -> GenerationState:
    return self._state

  @property
  def broadcaster(self) -> ProgressBroadcaster:
    return self._broadcaster

  def progress(self) -> ProgressEvent:
    return self._state.snapshot()

  def build_queue(self) -> list[TopicTask]:
    """Every syllabus topic of every known subject, in syllabus order."""
    syllabus = self._knowledge.syllabus
    if syllabus is None:
      return []

    queue: list[TopicTask] = []
    for subject in syllabus.topics:
      if subject.key not in SUBJECT_KEYS:
        logger.warning("Skipping unknown subject key %r", subject.key)
        continue
      for topic in subject.topics:
        topic_subject = topic.subject or subject.key
        if topic_subject != subject.key:
          logger.warning("Skipping topic %r tagged to %r but listed under %r", topic.name, topic_subject, subject.key)
          continue
        queue.append(TopicTask(subject.key, subject.name, topic.name, tuple(topic.subtopics)))
    return queue

  def build_subject_queue(self, subject_key: str) -> list[TopicTask] | None:
    """Topics of one subject, or ``None`` when the subject is unknown or not in the syllabus."""
    syllabus = self._knowledge.syllabus
    if syllabus is None or subject_key not in SUBJECT_KEYS:
      return None
    subject = next((entry for entry in syllabus.topics if entry.key == subject_key), None)
    if subject is None:
      return None
    return [TopicTask(subject_key, subject.name, topic.name, tuple(topic.subtopics)) for topic in subject.topics if (topic.subject or subject_key) == subject_key]

  def trigger(self) -> bool:
    """Start a full run in the background; no-op while running or without a syllabus."""
    if self._state.running:
      return False
    queue = self.build_queue()
    if not queue:
      return False
    return self.start(queue)

  def trigger_for_subject(self, subject_key: str) -> bool:
    """Regenerate one subject in the background after dropping its cached content."""
    if self._state.running:
      return False
    queue = self.build_subject_queue(subject_key)
    if queue is None:
      return False
    self._content.clear_subject(subject_key)
    if not queue:
      self._content.persist()
      return False
    return self.start(queue)

  def _begin(self, queue: Sequence[TopicTask]) -> bool:
    # Check-and-set with no await in between.
    if self._state.running:
      logger.info("Generation already running (%d/%d); ignoring trigger", self._state.done, self._state.total)
      return False
    self._state.reset(len(queue), utc_now_iso())
    return True

  def start(self, queue: Sequence[TopicTask]) -> bool:
    """Claim the run guard now and process ``queue`` on a background task."""
    if not self._begin(queue):
      return False
    self._task = asyncio.get_running_loop().create_task(self._drain(list(queue)))
    return True

  async def run(self, queue: Sequence[TopicTask]) -> bool:
    """Process ``queue`` in the caller's task; returns False if a run was already active."""
    if not self._begin(queue):
      return False
    await self._drain(list(queue))
    return True

  async def wait(self) -> None:
    """Wait for the background run started by ``start`` to finish."""
    if self._task is not None:
      await asyncio.shield(self._task)

  def _publish(self) -> None:
    self._broadcaster.publish(self._state.snapshot())

  async def _drain(self, queue: list[TopicTask]) -> None:
    state = self._state
    try:
      self._publish()
      for task in queue:
        state.current = task.label
        self._publish()
        try:
          content = await self.generate_topic(task)
        except Exception as exc:  # noqa: BLE001
          logger.error("Generation error [%s]: %s", task.topic_name, exc, exc_info=True)
          state.errors.append({"topic": task.topic_name, "error": str(exc) or type(exc).__name__})
          content = TopicContent(status="generation_failed", message=GENERATION_FAILED_MESSAGE)
        # Store and persist before the next topic starts.
        self._content.put(task.subject_key, task.topic_name, content)
        self._content.persist()
        state.done += 1
        self._publish()
        await self._sleep(self._delay)
    finally:
      state.running = False
      state.current = ""
      state.finished_at = utc_now_iso()
      self._publish()
      self._content.persist()
      logger.info("Pre-generation complete: %d/%d | errors: %d", state.done, state.total, len(state.errors))

  async def generate_topic(self, task: TopicTask) -> TopicContent:
    """Build one topic's study package, or a sentinel when it cannot be produced."""
    references = self._knowledge.references_for(task.subject_key)
    if not references:
      return TopicContent(status="no_materials", message=NO_MATERIALS_MESSAGE)

    prompt = build_topic_prompt(task.subject_key, task.topic_name, task.subtopics, references)
    parsed = await self._structured.invoke_prompt(prompt, TOPIC_MAX_TOKENS)
    return _topic_content_from(parsed, task)


def _topic_content_from(parsed: Any, task: TopicTask) -> TopicContent:
  if not isinstance(parsed, dict) or not any(parsed.get(key) for key in ("lesson", "mcq", "essay")):
    logger.warning("No structured content for %s", task.label)
    return TopicContent(status="generation_failed", message=GENERATION_FAILED_MESSAGE)
  return TopicContent(lesson=parsed.get("lesson"), mcq=parsed.get("mcq"), essay=parsed.get("essay"))
