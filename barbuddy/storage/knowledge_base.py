"""In-process knowledge base and content cache backed by a blob store.

Both containers are mutated only from the event loop thread, so plain
attributes are enough; every mutation that must look atomic finishes,
including its ``persist()`` call, before the caller awaits again.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from barbuddy.schema.knowledge import PastBarDocument, Reference, Syllabus, TopicContent
from barbuddy.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

KB_KEY = "kb"
CONTENT_KEY = "content"


def _validate_list(model: type[Reference] | type[PastBarDocument], raw: Any) -> list[Any]:
  items: list[Any] = []
  for entry in raw or []:
    try:
      items.append(model.model_validate(entry))
    except ValidationError as exc:
      logger.warning("Skipping malformed %s record: %s", model.__name__, exc)
  return items


class KnowledgeBase:
  """Syllabus, reference materials and past bar documents."""

  def __init__(self, store: BlobStore) -> None:
    self._store = store
    self.syllabus: Syllabus | None = None
    self.references: list[Reference] = []
    self.past_bar: list[PastBarDocument] = []

  def load(self) -> None:
    raw = self._store.load(KB_KEY)
    if not isinstance(raw, dict):
      return
    syllabus = raw.get("syllabus")
    try:
      self.syllabus = Syllabus.model_validate(syllabus) if syllabus else None
    except ValidationError as exc:
      logger.warning("Ignoring malformed stored syllabus: %s", exc)
      self.syllabus = None
    self.references = _validate_list(Reference, raw.get("references"))
    self.past_bar = _validate_list(PastBarDocument, raw.get("pastBar"))

  def to_json(self) -> dict[str, Any]:
    return {
      "syllabus": self.syllabus.to_json() if self.syllabus else None,
      "references": [reference.to_json() for reference in self.references],
      "pastBar": [document.to_json() for document in self.past_bar],
    }

  def persist(self) -> bool:
    return self._store.save(KB_KEY, self.to_json())

  def references_for(self, subject: str) -> list[Reference]:
    return [reference for reference in self.references if reference.subject == subject]

  def find_reference(self, reference_id: str) -> Reference | None:
    return next((reference for reference in self.references if reference.id == reference_id), None)

  def find_past_bar(self, document_id: str) -> PastBarDocument | None:
    return next((document for document in self.past_bar if document.id == document_id), None)

  def remove_document(self, document_id: str) -> None:
    self.references = [reference for reference in self.references if reference.id != document_id]
    self.past_bar = [document for document in self.past_bar if document.id != document_id]


class ContentCache:
  """Generated topic content keyed by subject, then topic name."""

  def __init__(self, store: BlobStore) -> None:
    self._store = store
    self._content: dict[str, dict[str, TopicContent]] = {}

  def load(self) -> None:
    raw = self._store.load(CONTENT_KEY)
    if not isinstance(raw, dict):
      return
    content: dict[str, dict[str, TopicContent]] = {}
    for subject, topics in raw.items():
      if not isinstance(topics, dict):
        continue
      for topic, entry in topics.items():
        try:
          content.setdefault(subject, {})[topic] = TopicContent.model_validate(entry)
        except ValidationError as exc:
          logger.warning("Skipping malformed content for %s / %s: %s", subject, topic, exc)
    self._content = content

  def to_json(self, subjects: Iterable[str] | None = None) -> dict[str, Any]:
    wanted = set(subjects) if subjects is not None else None
    return {subject: {topic: entry.to_json() for topic, entry in topics.items()} for subject, topics in self._content.items() if wanted is None or subject in wanted}

  def persist(self) -> bool:
    return self._store.save(CONTENT_KEY, self.to_json())

  def get(self, subject: str, topic: str) -> TopicContent | None:
    return self._content.get(subject, {}).get(topic)

  def put(self, subject: str, topic: str, content: TopicContent) -> None:
    """Replace one topic's content in a single assignment."""
    self._content.setdefault(subject, {})[topic] = content

  def subjects(self) -> list[str]:
    return list(self._content)

  def topics(self, subject: str) -> dict[str, TopicContent]:
    return dict(self._content.get(subject, {}))

  def has_subject(self, subject: str) -> bool:
    return subject in self._content

  def clear_subject(self, subject: str) -> None:
    self._content.pop(subject, None)

  def clear(self) -> None:
    self._content = {}

  @property
  def topic_count(self) -> int:
    return sum(len(topics) for topics in self._content.values())
