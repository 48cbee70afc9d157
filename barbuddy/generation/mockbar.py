"""Mock bar assembly: real past-bar questions first, then cached essays, then synthetic fill."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import Field, ValidationError

from barbuddy.ai.errors import ModelInvocationError
from barbuddy.ai.prompts import build_question_generation_prompt
from barbuddy.ai.structured import StructuredInvoker
from barbuddy.schema.knowledge import CamelModel
from barbuddy.storage.knowledge_base import ContentCache, KnowledgeBase

logger = logging.getLogger(__name__)

Difficulty = Literal["situational", "conceptual", "balanced"]

ALL_SUBJECTS = "all"
PRE_GENERATED_SOURCE = "Pre-generated"
AI_GENERATED_SOURCE = "AI Generated"
AI_MAX_TOKENS = 4000


class MockBarSources(CamelModel):
  past_bar: bool = True
  pre_gen: bool = True
  ai_generate: bool = True


class MockBarOptions(CamelModel):
  sources: MockBarSources = Field(default_factory=MockBarSources)
  past_bar_ids: list[str] = Field(default_factory=list)
  include_pre_gen: bool | None = None
  topics: list[str] = Field(default_factory=list)
  difficulty: Difficulty = "balanced"

  @property
  def use_pre_gen(self) -> bool:
    return self.include_pre_gen if self.include_pre_gen is not None else self.sources.pre_gen


class Question(CamelModel):
  """One exam item with its provenance."""

  q: str
  context: str = ""
  model_answer: str = ""
  key_points: list[str] = Field(default_factory=list)
  subject: str = "general"
  source: str = ""
  is_real: bool = False
  type: str = "situational"
  number: int = 0
  year: str | None = None
  past_bar_id: str | None = None
  past_bar_name: str | None = None


class MockBarResult(CamelModel):
  questions: list[Question] = Field(default_factory=list)
  total: int = 0
  requested: int = 0
  warning: str | None = None
  from_past_bar: int = 0
  from_pre_gen: int = 0
  ai_generated: int = 0


def normalize_subjects(subjects: str | Sequence[str] | None) -> list[str] | None:
  """Return the subject restriction, or ``None`` for no restriction."""
  if subjects is None or (isinstance(subjects, str) and subjects == ALL_SUBJECTS):
    return None
  if isinstance(subjects, str):
    return [subjects]
  wanted = [subject for subject in subjects if subject]
  if not wanted or ALL_SUBJECTS in wanted:
    return None
  return wanted


def _string_list(value: Any) -> list[str]:
  if not isinstance(value, list):
    return []
  return [str(item) for item in value if item]


def _plural(count: int) -> str:
  return f"{count} question{'' if count == 1 else 's'}"


def prefer_difficulty(pool: list[Question], difficulty: Difficulty) -> list[Question]:
  """Stable partition putting the preferred question type first; never drops items."""
  if difficulty == "situational":
    return [item for item in pool if item.type == "situational"] + [item for item in pool if item.type != "situational"]
  if difficulty == "conceptual":
    return [item for item in pool if item.type != "situational"] + [item for item in pool if item.type == "situational"]
  return pool


class MockBarAssembler:
  """Build mock bar exams of exactly the requested size whenever the sources allow."""

  def __init__(self, *, knowledge: KnowledgeBase, content: ContentCache, structured: StructuredInvoker, rng: random.Random | None = None) -> None:
    self._knowledge = knowledge
    self._content = content
    self._structured = structured
    self._rng = rng or random.Random()

  def _shuffled(self, pool: list[Question]) -> list[Question]:
    # random.shuffle is an in-place Fisher-Yates.
    self._rng.shuffle(pool)
    return pool

  def real_pool(self, subjects: list[str] | None, past_bar_ids: Sequence[str] = ()) -> list[Question]:
    """Shuffled real past bar questions, narrowed by subject and document id when given."""
    pool: list[Question] = []
    for document in self._knowledge.past_bar:
      if subjects is not None and document.subject not in subjects:
        continue
      if past_bar_ids and document.id not in past_bar_ids:
        continue
      for item in document.questions:
        if not item.q:
          continue
        pool.append(
          Question(
            q=item.q,
            context=item.context,
            model_answer=item.model_answer,
            key_points=list(item.key_points),
            subject=document.subject,
            source=document.name,
            is_real=True,
            type=item.type or "situational",
            year=document.year,
            past_bar_id=document.id,
            past_bar_name=document.name,
          )
        )
    return self._shuffled(pool)

  def pre_generated_pool(self, subjects: list[str] | None, topics: Sequence[str] = ()) -> list[Question]:
    """Shuffled essay questions from stored topic content; ``subjects=None`` means every subject."""
    pool: list[Question] = []
    target = subjects if subjects is not None else self._content.subjects()
    for subject in target:
      for topic, entry in self._content.topics(subject).items():
        if topics and topic not in topics:
          continue
        for essay in entry.essay_questions():
          pool.append(Question(q=essay.text, context=essay.context, model_answer=essay.model_answer, key_points=list(essay.key_points), subject=subject, source=PRE_GENERATED_SOURCE, is_real=False, type=essay.type or "situational"))
    return self._shuffled(pool)

  async def generate_ai_questions(self, needed: int, subjects: list[str] | None) -> list[Question]:
    """Ask the model for exactly ``needed`` questions; fewer is tolerated and logged."""
    if needed <= 0:
      return []
    prompt = build_question_generation_prompt(needed, subjects, self._knowledge.syllabus, self._knowledge.references)
    parsed = await self._structured.invoke_prompt(prompt, AI_MAX_TOKENS)
    if not isinstance(parsed, list):
      logger.warning("AI question generation returned %s instead of a list", type(parsed).__name__)
      return []

    fallback_subject = subjects[0] if subjects else "general"
    questions: list[Question] = []
    for item in parsed:
      if not isinstance(item, dict) or not (item.get("q") or item.get("prompt")):
        continue
      try:
        questions.append(
          Question(
            q=item.get("q") or item.get("prompt"),
            context=item.get("context") or "",
            model_answer=item.get("modelAnswer") or "",
            key_points=_string_list(item.get("keyPoints")),
            subject=item.get("subject") or fallback_subject,
            source=AI_GENERATED_SOURCE,
            is_real=False,
            type=item.get("type") or "situational",
          )
        )
      except ValidationError as exc:
        logger.warning("Skipping malformed AI question: %s", exc)

    if len(questions) < needed:
      logger.warning("AI returned %d question(s) but %d were needed", len(questions), needed)
    return questions[:needed]

  async def generate(self, subjects: str | Sequence[str] | None, count: int, options: MockBarOptions | None = None) -> MockBarResult:
    """Assemble ``count`` questions: real pool, then pre-generated pool, then AI fill or clamp."""
    if count < 0:
      raise ValueError("count must be non-negative")
    if count == 0:
      return MockBarResult()

    options = options or MockBarOptions()
    wanted = normalize_subjects(subjects)
    warning: str | None = None

    real = self.real_pool(wanted, options.past_bar_ids) if options.sources.past_bar else []
    pre_gen = self.pre_generated_pool(wanted, options.topics) if options.use_pre_gen else []
    pre_gen = prefer_difficulty(pre_gen, options.difficulty)
    logger.info("Mock bar pools: real=%d pre-generated=%d requested=%d", len(real), len(pre_gen), count)

    chosen = real[:count]
    chosen += pre_gen[: count - len(chosen)]

    target = count
    gap = count - len(chosen)
    if gap > 0:
      if not options.sources.ai_generate:
        target = len(chosen)
        warning = f"⚠️ Only {_plural(target)} available in pool. Starting with {_plural(target)}."
        logger.warning("AI generation disabled; clamping mock bar to %d", target)
      else:
        try:
          chosen += await self.generate_ai_questions(gap, wanted)
        except ModelInvocationError as exc:
          logger.error("AI question generation failed: %s", exc)

    final = chosen[:target]
    if len(final) < target:
      warning = f"⚠️ Only {_plural(len(final))} could be assembled out of {target} requested."
      logger.warning("Mock bar short: %d/%d (real=%d pre-generated=%d)", len(final), target, len(real), len(pre_gen))

    numbered = [question.model_copy(update={"number": index}) for index, question in enumerate(final, start=1)]
    return _result(numbered, requested=count, warning=warning)


def _result(questions: list[Question], *, requested: int, warning: str | None) -> MockBarResult:
  from_past_bar = sum(1 for question in questions if question.is_real)
  from_pre_gen = sum(1 for question in questions if not question.is_real and question.source == PRE_GENERATED_SOURCE)
  return MockBarResult(
    questions=questions,
    total=len(questions),
    requested=requested,
    warning=warning,
    from_past_bar=from_past_bar,
    from_pre_gen=from_pre_gen,
    ai_generated=len(questions) - from_past_bar - from_pre_gen,
  )


def result_payload(result: MockBarResult) -> dict[str, Any]:
  payload = result.to_json()
  payload["questions"] = [question.model_dump(mode="json", by_alias=True, exclude_none=True) for question in result.questions]
  return payload
