"""Document uploads and the background work they queue."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from barbuddy.ai.errors import ProviderError
from barbuddy.generation.documents import DocumentService, SyllabusParseError, dedupe_questions, split_chunks
from barbuddy.jobs.queue import JobQueue
from barbuddy.schema.knowledge import PastBarQuestion, Syllabus
from barbuddy.storage.knowledge_base import KnowledgeBase
from tests.fakes import MemoryBlobStore, RecordingSleep


@pytest.fixture
def knowledge() -> KnowledgeBase:
  return KnowledgeBase(MemoryBlobStore())


@pytest.fixture
def invoker() -> AsyncMock:
  return AsyncMock()


@pytest.fixture
def structured() -> AsyncMock:
  return AsyncMock()


@pytest.fixture
def engine() -> MagicMock:
  engine = MagicMock()
  engine.trigger.return_value = True
  return engine


@pytest.fixture
def sleep() -> RecordingSleep:
  return RecordingSleep()


@pytest.fixture
def service(knowledge: KnowledgeBase, invoker: AsyncMock, structured: AsyncMock, engine: MagicMock, sleep: RecordingSleep) -> DocumentService:
  return DocumentService(knowledge=knowledge, invoker=invoker, structured=structured, engine=engine, jobs=JobQueue(delay_seconds=0), sleep=sleep)


def test_split_chunks_caps_the_number_of_slices() -> None:
  assert split_chunks("abcdefg", 3) == ["abc", "def", "g"]
  assert split_chunks("a" * 50, 1, limit=4) == ["a"] * 4
  assert split_chunks("", 10) == []


def test_dedupe_compares_normalised_prefix() -> None:
  questions = [PastBarQuestion(q="Is the sale valid?"), PastBarQuestion(q="  is the SALE valid?  "), PastBarQuestion(q="Is the lease valid?")]
  assert [question.q for question in dedupe_questions(questions)] == ["Is the sale valid?", "Is the lease valid?"]


def test_upload_syllabus_stores_and_triggers_generation(service: DocumentService, knowledge: KnowledgeBase, engine: MagicMock) -> None:
  upload = service.upload_syllabus("CIVIL LAW\n1. Sales\n2. Lease\nLABOR LAW\n1. Wages\n", "2026 Syllabus")

  assert knowledge.syllabus.name == "2026 Syllabus"
  engine.trigger.assert_called_once_with()
  summary = upload.summary()
  assert summary["subjects"] == 2
  assert summary["totalTopics"] == 3
  assert summary["generationStarted"] is True
  assert summary["breakdown"][0] == {"key": "civil", "name": "Civil Law", "topicCount": 2}
  assert summary["unknownTopics"] == []


def test_upload_syllabus_without_headings_is_rejected(service: DocumentService, knowledge: KnowledgeBase, engine: MagicMock) -> None:
  with pytest.raises(SyllabusParseError):
    service.upload_syllabus("just some notes\n1. nothing here\n")
  assert knowledge.syllabus is None
  engine.trigger.assert_not_called()


@pytest.mark.anyio
async def test_single_chunk_summary_is_one_call(service: DocumentService, invoker: AsyncMock, sleep: RecordingSleep) -> None:
  invoker.invoke.return_value = "Short summary"
  assert await service.summarize_large_doc("Art. 1458 defines sale.", "Reviewer", "civil") == "Short summary"
  assert invoker.invoke.await_count == 1
  assert sleep.calls == []


@pytest.mark.anyio
async def test_large_document_is_summarised_per_chunk_then_merged(service: DocumentService, invoker: AsyncMock, sleep: RecordingSleep) -> None:
  invoker.invoke.side_effect = ["part one", "part two", "part three", "master summary"]

  summary = await service.summarize_large_doc("x" * 25_000, "Reviewer", "civil")

  assert summary == "master summary"
  assert invoker.invoke.await_count == 4
  assert sleep.calls == [0.4, 0.4]
  master_prompt = invoker.invoke.await_args.args[0][0]["content"]
  assert "part one" in master_prompt and "part three" in master_prompt


@pytest.mark.anyio
async def test_two_chunk_summary_skips_the_merge_call(service: DocumentService, invoker: AsyncMock) -> None:
  invoker.invoke.side_effect = ["first half", ProviderError("chunk failed")]
  assert await service.summarize_large_doc("y" * 15_000, "Reviewer", "civil") == "first half"
  assert invoker.invoke.await_count == 2


@pytest.mark.anyio
async def test_reference_is_stored_then_summarised_in_background(service: DocumentService, knowledge: KnowledgeBase, invoker: AsyncMock, engine: MagicMock) -> None:
  knowledge.syllabus = Syllabus()
  invoker.invoke.return_value = "Labor summary"

  reference, job_id = service.add_reference("Labor Code text", "Labor Reviewer", "labor", "codal")
  assert knowledge.find_reference(reference.id).summary == "processing"

  await service._jobs.join()

  assert knowledge.find_reference(reference.id).summary == "Labor summary"
  assert service._jobs.get_status(job_id) == {"status": "done", "result": {"id": reference.id, "name": "Labor Reviewer"}, "error": None}
  engine.trigger_for_subject.assert_called_once_with("labor")


@pytest.mark.anyio
async def test_reference_without_syllabus_does_not_regenerate(service: DocumentService, invoker: AsyncMock, engine: MagicMock) -> None:
  invoker.invoke.return_value = "summary"
  reference, _ = service.add_reference("text", "Untagged")
  await service._jobs.join()
  assert reference.subject == "general"
  engine.trigger_for_subject.assert_not_called()


@pytest.mark.anyio
async def test_past_bar_extraction_dedupes_and_tags_subject(service: DocumentService, knowledge: KnowledgeBase, invoker: AsyncMock, structured: AsyncMock) -> None:
  invoker.invoke.return_value = "Q1 about sale. Q2 about lease."
  structured.invoke_prompt.return_value = {"questions": [{"q": "Is the sale valid?"}, {"q": "is the sale valid?"}, {"q": "Is the lease void?", "topics": ["Lease"]}, {"context": "no question"}]}

  document, job_id = service.add_past_bar("1. Is the sale valid? 2. Is the lease void?", "Civil 2019", "civil", "2019")
  assert knowledge.find_past_bar(document.id).extracting is True

  await service._jobs.join()

  stored = knowledge.find_past_bar(document.id)
  assert not stored.extracting
  assert stored.extract_error is None
  assert stored.extracted_at is not None
  assert [(question.q, question.topics) for question in stored.questions] == [("Is the sale valid?", ["civil"]), ("Is the lease void?", ["Lease"])]
  assert service._jobs.get_status(job_id)["result"]["questionsExtracted"] == 2


@pytest.mark.anyio
async def test_past_bar_falls_back_to_text_only_prompt(service: DocumentService, knowledge: KnowledgeBase, invoker: AsyncMock, structured: AsyncMock) -> None:
  invoker.invoke.return_value = "analysis"
  structured.invoke_prompt.side_effect = [None, {"questions": [{"q": "Fallback question?"}]}]

  document, _ = service.add_past_bar("Some exam text", "Labor 2018", "labor")
  await service._jobs.join()

  assert [question.q for question in knowledge.find_past_bar(document.id).questions] == ["Fallback question?"]
  assert structured.invoke_prompt.await_args.kwargs == {"retries": 1}


@pytest.mark.anyio
async def test_past_bar_analysis_failure_is_recorded(service: DocumentService, knowledge: KnowledgeBase, invoker: AsyncMock) -> None:
  invoker.invoke.side_effect = ProviderError("invalid x-api-key", status_code=401)

  document, _ = service.add_past_bar("Some exam text", "Labor 2018", "labor")
  await service._jobs.join()

  stored = knowledge.find_past_bar(document.id)
  assert not stored.extracting
  assert stored.extract_error == "invalid x-api-key"
  assert stored.questions == []
