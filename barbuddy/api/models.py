from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, StrictStr, field_validator

from barbuddy.generation.mockbar import Difficulty, MockBarOptions, MockBarSources
from barbuddy.jobs.models import JobStatus
from barbuddy.schema.knowledge import CamelModel

MAX_MOCK_BAR_QUESTIONS = 100


class SyllabusUploadRequest(CamelModel):
  """Plain-text syllabus with subject headings and numbered or bulleted topics."""

  name: StrictStr | None = None
  content: StrictStr = Field(min_length=1)


class ReferenceUploadRequest(CamelModel):
  name: StrictStr = Field(min_length=1)
  subject: StrictStr | None = None
  type: StrictStr | None = None
  content: StrictStr = Field(min_length=1)


class PastBarUploadRequest(CamelModel):
  name: StrictStr = Field(min_length=1)
  subject: StrictStr | None = None
  year: StrictStr | None = None
  content: StrictStr = Field(min_length=1)


class ManualQuestion(CamelModel):
  q: StrictStr = ""
  context: StrictStr = ""
  model_answer: StrictStr = ""
  key_points: list[StrictStr] = Field(default_factory=list)
  type: StrictStr = "situational"


class ManualPastBarRequest(CamelModel):
  """Past bar questions typed in directly, skipping extraction."""

  name: StrictStr = Field(min_length=1)
  subject: StrictStr | None = None
  year: StrictStr | None = None
  questions: list[ManualQuestion] = Field(min_length=1)


class DocumentCreatedResponse(CamelModel):
  success: bool = True
  id: str
  name: str
  job_id: str


class JobStatusResponse(CamelModel):
  status: JobStatus
  result: Any | None = None
  error: str | None = None


class PastBarStatusResponse(CamelModel):
  extracting: bool
  questions_extracted: int
  extract_error: str | None = None


class ChatMessage(CamelModel):
  role: Literal["user", "assistant"]
  content: StrictStr


class GenerateContentRequest(CamelModel):
  messages: list[ChatMessage] = Field(min_length=1)
  max_tokens: int = Field(default=4096, ge=1, le=8192, alias="max_tokens")
  system: StrictStr | None = None


class MockBarRequest(CamelModel):
  subjects: list[StrictStr] | StrictStr | None = None
  count: int = Field(default=20, ge=0, le=MAX_MOCK_BAR_QUESTIONS)
  sources: MockBarSources | None = None
  past_bar_ids: list[StrictStr] = Field(default_factory=list)
  include_pre_gen: bool | None = None
  ai_generate: bool | None = None
  topics: list[StrictStr] = Field(default_factory=list)
  difficulty: Difficulty = "balanced"

  @field_validator("past_bar_ids", "topics", mode="before")
  @classmethod
  def _none_as_empty(cls, value: Any) -> Any:
    return [] if value is None else value

  def to_options(self) -> MockBarOptions:
    """Fold the top-level ``aiGenerate`` flag into the source switches."""
    sources = self.sources or MockBarSources()
    if self.ai_generate is not None:
      sources = sources.model_copy(update={"ai_generate": self.ai_generate})
    return MockBarOptions(sources=sources, past_bar_ids=self.past_bar_ids, include_pre_gen=self.include_pre_gen, topics=self.topics, difficulty=self.difficulty)


class EvaluateRequest(CamelModel):
  question: StrictStr = Field(min_length=1)
  answer: StrictStr
  model_answer: StrictStr | None = None
  key_points: list[StrictStr] | None = None
  subject: StrictStr | None = None


class StatusResponse(CamelModel):
  api_ok: bool
  model: str | None = None
  latency_ms: int | None = None
  queue_length: int
