"""Uploads for the knowledge base and the background jobs that digest them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from barbuddy.ai.backoff import Sleeper
from barbuddy.ai.errors import ModelInvocationError
from barbuddy.ai.invoker import ModelInvoker
from barbuddy.ai.prompts import (
  build_chunk_summary_prompt,
  build_master_summary_prompt,
  build_past_bar_analysis_prompt,
  build_past_bar_extraction_prompt,
  build_past_bar_fallback_prompt,
  build_summary_prompt,
)
from barbuddy.ai.providers.base import ChatTurn
from barbuddy.ai.structured import StructuredInvoker
from barbuddy.generation.pregeneration import PreGenerationEngine
from barbuddy.generation.syllabus import parse_syllabus_text
from barbuddy.jobs.queue import JobQueue
from barbuddy.schema.knowledge import SUBJECT_KEYS, PastBarDocument, PastBarQuestion, Reference, Syllabus, utc_now_iso
from barbuddy.storage.knowledge_base import KnowledgeBase
from barbuddy.utils.ids import generate_document_id

logger = logging.getLogger(__name__)

SUMMARY_CHUNK_CHARS = 10_000
PAST_BAR_CHUNK_CHARS = 12_000
MAX_CHUNKS = 12
CHUNK_DELAY_SECONDS = 0.4
SYLLABUS_TEXT_CAP = 60_000
DOCUMENT_TEXT_CAP = 30_000
DEDUPE_PREFIX_CHARS = 100

SINGLE_SUMMARY_TOKENS = 900
CHUNK_SUMMARY_TOKENS = 400
MASTER_SUMMARY_TOKENS = 1500
ANALYSIS_TOKENS = 2000
EXTRACTION_TOKENS = 4000
FALLBACK_EXTRACTION_TOKENS = 1500


class SyllabusParseError(ValueError):
  """Raised when no subject heading could be recognised in an uploaded syllabus."""


@dataclass(frozen=True)
class SyllabusUpload:
  syllabus: Syllabus
  generation_started: bool

  def summary(self) -> dict[str, Any]:
    subjects = self.syllabus.topics
    return {
      "success": True,
      "subjects": len(subjects),
      "totalTopics": self.syllabus.topic_count,
      "breakdown": [{"key": subject.key, "name": subject.name, "topicCount": len(subject.topics)} for subject in subjects],
      "unknownTopics": [subject.name for subject in subjects if subject.key not in SUBJECT_KEYS],
      "generationStarted": self.generation_started,
    }


def split_chunks(content: str, size: int, limit: int = MAX_CHUNKS) -> list[str]:
  """Fixed-size slices of ``content``, at most ``limit`` of them."""
  return [content[start : start + size] for start in range(0, len(content), size)][:limit]


def dedupe_questions(questions: list[PastBarQuestion]) -> list[PastBarQuestion]:
  """Drop repeats, comparing the first characters of the lowercased question text."""
  seen: set[str] = set()
  unique: list[PastBarQuestion] = []
  for question in questions:
    key = question.q.strip().lower()[:DEDUPE_PREFIX_CHARS]
    if key in seen:
      continue
    seen.add(key)
    unique.append(question)
  return unique


def _questions_from(parsed: Any, subject: str) -> list[PastBarQuestion]:
  if not isinstance(parsed, dict):
    return []
  questions: list[PastBarQuestion] = []
  for item in parsed.get("questions") or []:
    if not isinstance(item, dict) or not item.get("q"):
      continue
    try:
      question = PastBarQuestion.model_validate(item)
    except ValidationError as exc:
      logger.warning("Skipping malformed extracted question: %s", exc)
      continue
    if not question.topics:
      question.topics = [subject]
    questions.append(question)
  return questions


class DocumentService:
  """Store uploaded documents immediately and queue their model-bound processing."""

  def __init__(self, *, knowledge: KnowledgeBase, invoker: ModelInvoker, structured: StructuredInvoker, engine: PreGenerationEngine, jobs: JobQueue, chunk_delay_seconds: float = CHUNK_DELAY_SECONDS, sleep: Sleeper = asyncio.sleep) -> None:
    self._knowledge = knowledge
    self._invoker = invoker
    self._structured = structured
    self._engine = engine
    self._jobs = jobs
    self._chunk_delay = chunk_delay_seconds
    self._sleep = sleep

  def upload_syllabus(self, content: str, name: str | None = None) -> SyllabusUpload:
    subjects = parse_syllabus_text(content)
    if not subjects:
      raise SyllabusParseError("Could not parse any subjects. Try plain text with clear subject headings.")
    syllabus = Syllabus(name=name or "Bar Exam Syllabus", raw_text=content[:SYLLABUS_TEXT_CAP], topics=subjects)
    self._knowledge.syllabus = syllabus
    self._knowledge.persist()
    logger.info("Syllabus stored: %d subject(s), %d topic(s)", len(subjects), syllabus.topic_count)
    return SyllabusUpload(syllabus=syllabus, generation_started=self._engine.trigger())

  def add_reference(self, content: str, name: str, subject: str | None = None, doc_type: str | None = None) -> tuple[Reference, str]:
    """Store the reference now; summarise it on the job queue."""
    reference = Reference(id=generate_document_id("ref"), name=name, subject=subject or "general", type=doc_type or "other", text=content[:DOCUMENT_TEXT_CAP], size=len(content))
    self._knowledge.references.append(reference)
    self._knowledge.persist()

    async def work() -> dict[str, Any]:
      summary = await self.summarize_large_doc(content, reference.name, reference.subject)
      stored = self._knowledge.find_reference(reference.id)
      if stored is not None:
        stored.summary = summary
        self._knowledge.persist()
      if self._knowledge.syllabus is not None:
        self._engine.trigger_for_subject(reference.subject)
      return {"id": reference.id, "name": reference.name}

    return reference, self._jobs.enqueue(work)

  def add_past_bar(self, content: str, name: str, subject: str | None = None, year: str | None = None) -> tuple[PastBarDocument, str]:
    """Store the document flagged as extracting; pull its questions out on the job queue."""
    document = PastBarDocument(id=generate_document_id("pb"), name=name, subject=subject or "general", year=year or "Unknown", raw_text=content[:DOCUMENT_TEXT_CAP], extracting=True)
    self._knowledge.past_bar.append(document)
    self._knowledge.persist()

    async def work() -> dict[str, Any]:
      await self.extract_past_bar(document.id, content)
      stored = self._knowledge.find_past_bar(document.id)
      return {"id": document.id, "name": document.name, "questionsExtracted": len(stored.questions) if stored else 0}

    return document, self._jobs.enqueue(work)

  async def _ask(self, prompt: str, max_tokens: int) -> str:
    return await self._invoker.invoke([ChatTurn(role="user", content=prompt)], max_tokens)

  async def summarize_large_doc(self, content: str, name: str, subject: str) -> str:
    """Summarise a document of any size through sequential chunk summaries."""
    chunks = split_chunks(content, SUMMARY_CHUNK_CHARS)
    if len(chunks) <= 1:
      return await self._ask(build_summary_prompt(chunks[0] if chunks else "", name, subject), SINGLE_SUMMARY_TOKENS)

    parts: list[str] = []
    for index, chunk in enumerate(chunks):
      try:
        part = await self._ask(build_chunk_summary_prompt(chunk, name, subject, index + 1, len(chunks)), CHUNK_SUMMARY_TOKENS)
      except ModelInvocationError as exc:
        logger.warning("Summary of %s part %d/%d failed: %s", name, index + 1, len(chunks), exc)
        part = ""
      if part:
        parts.append(part)
      if index < len(chunks) - 1:
        await self._sleep(self._chunk_delay)

    if len(parts) <= 2:
      return "\n\n".join(parts)
    return await self._ask(build_master_summary_prompt(parts, name, subject), MASTER_SUMMARY_TOKENS)

  async def extract_past_bar(self, document_id: str, content: str) -> None:
    """Two-pass extraction: map each chunk, then copy its questions out as JSON."""
    document = self._knowledge.find_past_bar(document_id)
    if document is None:
      logger.warning("Past bar document %s disappeared before extraction", document_id)
      return

    chunks = split_chunks(content, PAST_BAR_CHUNK_CHARS)
    logger.info("Past bar extraction [%s]: %d chars, %d chunk(s)", document.name, len(content), len(chunks))
    try:
      analyses: list[str] = []
      for index, chunk in enumerate(chunks):
        analyses.append(await self._ask(build_past_bar_analysis_prompt(document, chunk, index + 1, len(chunks)), ANALYSIS_TOKENS))
        if index < len(chunks) - 1:
          await self._sleep(self._chunk_delay)

      extracted: list[PastBarQuestion] = []
      for index, chunk in enumerate(chunks):
        found = await self._extract_chunk(document, analyses[index], chunk, index + 1, len(chunks))
        logger.info("Past bar chunk %d/%d: found %d question(s)", index + 1, len(chunks), len(found))
        extracted.extend(found)
        if index < len(chunks) - 1:
          await self._sleep(self._chunk_delay)
    except ModelInvocationError as exc:
      logger.error("Past bar extraction [%s] failed: %s", document.name, exc)
      document.extracting = False
      document.extract_error = str(exc)
      self._knowledge.persist()
      return

    unique = dedupe_questions(extracted)
    logger.info("Past bar extraction [%s]: raw=%d, deduped=%d", document.name, len(extracted), len(unique))
    document.questions = unique
    document.extracting = False
    document.extract_error = None
    document.extracted_at = utc_now_iso()
    self._knowledge.persist()

  async def _extract_chunk(self, document: PastBarDocument, analysis: str, chunk: str, part: int, total: int) -> list[PastBarQuestion]:
    try:
      parsed = await self._structured.invoke_prompt(build_past_bar_extraction_prompt(document, analysis, chunk, part, total), EXTRACTION_TOKENS)
    except ModelInvocationError as exc:
      logger.warning("Past bar chunk %d extraction failed: %s", part, exc)
      parsed = None
    if isinstance(parsed, dict):
      return _questions_from(parsed, document.subject)

    logger.warning("Past bar chunk %d: structured extraction failed, trying text-only prompt", part)
    try:
      parsed = await self._structured.invoke_prompt(build_past_bar_fallback_prompt(document, chunk), FALLBACK_EXTRACTION_TOKENS, retries=1)
    except ModelInvocationError as exc:
      logger.warning("Past bar chunk %d text-only retry failed: %s", part, exc)
      return []
    return _questions_from(parsed, document.subject)
