"""Pre-generation engine: fault isolation, run guard and sentinels."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from barbuddy.generation.pregeneration import GENERATION_FAILED_MESSAGE, NO_MATERIALS_MESSAGE, PreGenerationEngine, TopicTask
from barbuddy.generation.progress import ProgressBroadcaster, ProgressEvent
from barbuddy.schema.knowledge import Reference, Syllabus, SyllabusSubject, SyllabusTopic
from barbuddy.storage.knowledge_base import ContentCache, KnowledgeBase
from tests.fakes import MemoryBlobStore, RecordingSleep

TOPIC_PACKAGE = {
  "lesson": {"pages": [{"title": "Page 1", "content": "<p>Rule</p>"}]},
  "mcq": {"questions": []},
  "essay": {"questions": [{"type": "situational", "prompt": "Is A liable?", "context": "A borrowed a car.", "modelAnswer": "Yes.", "keyPoints": ["Art. 1170"]}]},
}


def _syllabus(*subjects: tuple[str, str, list[str]]) -> Syllabus:
  return Syllabus(topics=[SyllabusSubject(key=key, name=name, topics=[SyllabusTopic(name=topic, subject=key) for topic in topics]) for key, name, topics in subjects])


@pytest.fixture
def store() -> MemoryBlobStore:
  return MemoryBlobStore()


@pytest.fixture
def knowledge(store: MemoryBlobStore) -> KnowledgeBase:
  kb = KnowledgeBase(store)
  kb.syllabus = _syllabus(("civil", "Civil Law", ["Obligations", "Contracts", "Sales"]))
  kb.references.append(Reference(id="ref_1", name="Civil Reviewer", subject="civil", text="Obligations arise from law.", summary="Civil summary"))
  return kb


@pytest.fixture
def content(store: MemoryBlobStore) -> ContentCache:
  return ContentCache(store)


def _engine(knowledge: KnowledgeBase, content: ContentCache, structured: AsyncMock, sleep: RecordingSleep | None = None) -> PreGenerationEngine:
  return PreGenerationEngine(structured=structured, knowledge=knowledge, content=content, broadcaster=ProgressBroadcaster(), topic_delay_seconds=0.6, sleep=sleep or RecordingSleep())


@pytest.mark.anyio
async def test_failing_topic_does_not_stop_the_run(knowledge: KnowledgeBase, content: ContentCache, store: MemoryBlobStore) -> None:
  structured = AsyncMock()
  structured.invoke_prompt.side_effect = [TOPIC_PACKAGE, RuntimeError("provider exploded"), TOPIC_PACKAGE]
  engine = _engine(knowledge, content, structured)

  assert await engine.run(engine.build_queue())

  state = engine.state
  assert state.done == 3
  assert state.total == 3
  assert not state.running
  assert state.finished_at is not None
  assert state.errors == [{"topic": "Contracts", "error": "provider exploded"}]

  assert not content.get("civil", "Obligations").is_sentinel
  assert not content.get("civil", "Sales").is_sentinel
  failed = content.get("civil", "Contracts")
  assert failed.status == "generation_failed"
  assert failed.message == GENERATION_FAILED_MESSAGE
  # Persisted after every topic, not only at the end.
  assert store.saves.count("content") >= 3
  assert set(store.blobs["content"]["civil"]) == {"Obligations", "Contracts", "Sales"}


@pytest.mark.anyio
async def test_topics_are_spaced_by_the_topic_delay(knowledge: KnowledgeBase, content: ContentCache) -> None:
  structured = AsyncMock()
  structured.invoke_prompt.return_value = TOPIC_PACKAGE
  sleep = RecordingSleep()
  engine = _engine(knowledge, content, structured, sleep)

  await engine.run(engine.build_queue())

  assert sleep.calls == [0.6, 0.6, 0.6]
  assert structured.invoke_prompt.await_count == 3


@pytest.mark.anyio
async def test_topic_without_references_gets_no_materials_sentinel(knowledge: KnowledgeBase, content: ContentCache) -> None:
  knowledge.references.clear()
  structured = AsyncMock()
  engine = _engine(knowledge, content, structured)

  await engine.run(engine.build_queue())

  structured.invoke_prompt.assert_not_awaited()
  entry = content.get("civil", "Obligations")
  assert entry.status == "no_materials"
  assert entry.message == NO_MATERIALS_MESSAGE
  assert engine.state.errors == []


@pytest.mark.anyio
async def test_unusable_result_becomes_generation_failed(knowledge: KnowledgeBase, content: ContentCache) -> None:
  structured = AsyncMock()
  structured.invoke_prompt.side_effect = [None, {}, {"lesson": None, "mcq": {}, "essay": []}]
  engine = _engine(knowledge, content, structured)

  await engine.run(engine.build_queue())

  assert content.get("civil", "Obligations").status == "generation_failed"
  assert content.get("civil", "Contracts").status == "generation_failed"
  assert content.get("civil", "Sales").status == "generation_failed"
  assert engine.state.errors == []


@pytest.mark.anyio
async def test_second_trigger_while_running_is_ignored(knowledge: KnowledgeBase, content: ContentCache) -> None:
  gate = asyncio.Event()

  async def slow(*args, **kwargs):
    await gate.wait()
    return TOPIC_PACKAGE

  structured = AsyncMock()
  structured.invoke_prompt.side_effect = slow
  engine = _engine(knowledge, content, structured)

  assert engine.trigger() is True
  assert engine.state.running
  assert engine.trigger() is False
  assert engine.trigger_for_subject("civil") is False

  gate.set()
  await engine.wait()
  assert engine.state.done == 3
  assert structured.invoke_prompt.await_count == 3


@pytest.mark.anyio
async def test_trigger_without_syllabus_is_a_no_op(knowledge: KnowledgeBase, content: ContentCache) -> None:
  knowledge.syllabus = None
  engine = _engine(knowledge, content, AsyncMock())
  assert engine.trigger() is False
  assert not engine.state.running


@pytest.mark.anyio
async def test_progress_events_are_published(knowledge: KnowledgeBase, content: ContentCache) -> None:
  structured = AsyncMock()
  structured.invoke_prompt.return_value = TOPIC_PACKAGE
  engine = _engine(knowledge, content, structured)
  events: list[ProgressEvent] = []
  engine.broadcaster.subscribe(events.append)

  await engine.run(engine.build_queue())

  assert events[0].running and events[0].done == 0 and events[0].total == 3
  assert "Civil Law → Obligations" in [event.current for event in events]
  assert events[-1].finished
  assert events[-1].done == 3
  assert not events[-1].running


def test_build_queue_skips_unknown_subjects_and_mistagged_topics(knowledge: KnowledgeBase, content: ContentCache) -> None:
  knowledge.syllabus = _syllabus(("civil", "Civil Law", ["Obligations"]), ("maritime", "Maritime Law", ["Salvage"]))
  knowledge.syllabus.topics[0].topics.append(SyllabusTopic(name="Arrest", subject="criminal"))
  engine = _engine(knowledge, content, AsyncMock())

  assert engine.build_queue() == [TopicTask("civil", "Civil Law", "Obligations")]


@pytest.mark.anyio
async def test_subject_regeneration_clears_only_that_subject(knowledge: KnowledgeBase, content: ContentCache) -> None:
  knowledge.syllabus = _syllabus(("civil", "Civil Law", ["Obligations"]), ("labor", "Labor Law", ["Wages"]))
  structured = AsyncMock()
  structured.invoke_prompt.return_value = TOPIC_PACKAGE
  engine = _engine(knowledge, content, structured)
  await engine.run(engine.build_queue())
  stale = content.get("civil", "Obligations")

  assert engine.trigger_for_subject("civil") is True
  await engine.wait()

  assert engine.state.total == 1
  assert content.get("civil", "Obligations") is not stale
  assert content.get("labor", "Wages") is not None


def test_subject_regeneration_rejects_unknown_subject(knowledge: KnowledgeBase, content: ContentCache) -> None:
  engine = _engine(knowledge, content, AsyncMock())
  assert engine.build_subject_queue("maritime") is None
  assert engine.build_subject_queue("labor") is None
  assert engine.trigger_for_subject("maritime") is False


@pytest.mark.anyio
async def test_oddly_shaped_section_keeps_the_rest_of_the_topic(knowledge: KnowledgeBase, content: ContentCache) -> None:
  lesson = {"pages": [{"title": "Page 1", "content": "<p>Sale is consensual.</p>"}]}
  structured = AsyncMock()
  structured.invoke_prompt.return_value = {"lesson": lesson, "mcq": [{"q": "Is sale consensual?"}], "essay": [{"prompt": "Is the sale valid?", "type": "conceptual"}]}
  engine = _engine(knowledge, content, structured)

  await engine.run(engine.build_queue())

  entry = content.get("civil", "Obligations")
  assert not entry.is_sentinel
  assert entry.lesson == lesson
  assert entry.mcq == [{"q": "Is sale consensual?"}]
  assert [question.text for question in entry.essay_questions()] == ["Is the sale valid?"]
  assert engine.state.errors == []
