"""Persisted knowledge-base and content-cache records."""

from __future__ import annotations

import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

SUBJECT_KEYS: tuple[str, ...] = ("civil", "criminal", "political", "labor", "commercial", "taxation", "remedial", "ethics", "custom")

TopicStatus = Literal["no_materials", "generation_failed"]


def utc_now_iso() -> str:
  return datetime.datetime.now(datetime.UTC).isoformat()


class CamelModel(BaseModel):
  """Base model persisted and served with camelCase keys."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", protected_namespaces=())

  def to_json(self) -> dict[str, Any]:
    return self.model_dump(mode="json", by_alias=True)


class SyllabusTopic(CamelModel):
  name: str
  subject: str
  subtopics: list[str] = Field(default_factory=list)


class SyllabusSubject(CamelModel):
  key: str
  name: str
  topics: list[SyllabusTopic] = Field(default_factory=list)


class Syllabus(CamelModel):
  name: str = "Bar Exam Syllabus"
  raw_text: str = ""
  topics: list[SyllabusSubject] = Field(default_factory=list)
  uploaded_at: str = Field(default_factory=utc_now_iso)

  @property
  def topic_count(self) -> int:
    return sum(len(subject.topics) for subject in self.topics)


class Reference(CamelModel):
  """Uploaded reference material for one subject."""

  id: str
  name: str
  subject: str = "general"
  type: str = "other"
  text: str = ""
  summary: str = "processing"
  size: int = 0
  uploaded_at: str = Field(default_factory=utc_now_iso)


class PastBarQuestion(CamelModel):
  q: str
  context: str = ""
  model_answer: str = ""
  key_points: list[str] = Field(default_factory=list)
  type: str = "situational"
  topics: list[str] = Field(default_factory=list)


class PastBarDocument(CamelModel):
  """Past bar exam document and the questions extracted from it."""

  id: str
  name: str
  subject: str = "general"
  year: str = "Unknown"
  questions: list[PastBarQuestion] = Field(default_factory=list)
  raw_text: str = ""
  extracting: bool = False
  extract_error: str | None = None
  extracted_at: str | None = None
  uploaded_at: str = Field(default_factory=utc_now_iso)


class EssayQuestion(CamelModel):
  type: str = "situational"
  prompt: str | None = None
  q: str | None = None
  context: str = ""
  model_answer: str = ""
  key_points: list[str] = Field(default_factory=list)
  source: str | None = None

  @property
  def text(self) -> str:
    return self.prompt or self.q or ""


class TopicContent(CamelModel):
  """Generated study package for one topic, or a sentinel explaining its absence."""

  # Stored in whatever shape the model produced; readers tolerate lists and dicts.
  lesson: Any = None
  mcq: Any = None
  essay: Any = None
  generated_at: str = Field(default_factory=utc_now_iso)
  status: TopicStatus | None = None
  message: str | None = None

  @property
  def is_sentinel(self) -> bool:
    return self.status is not None

  def essay_questions(self) -> list[EssayQuestion]:
    """Return well-formed essay questions, skipping malformed entries."""
    raw = self.essay.get("questions") if isinstance(self.essay, dict) else self.essay
    if not isinstance(raw, list):
      return []
    questions: list[EssayQuestion] = []
    for item in raw:
      if not isinstance(item, dict):
        continue
      try:
        question = EssayQuestion.model_validate(item)
      except ValidationError:
        continue
      if question.text:
        questions.append(question)
    return questions
