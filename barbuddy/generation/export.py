"""Plain-text and JSON exports of past bar questions."""

from __future__ import annotations

import datetime
import re
from collections.abc import Iterable
from typing import Any

from barbuddy.schema.knowledge import PastBarDocument, PastBarQuestion

_BANNER = "=" * 48
_RULE = "-" * 48
_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9_\-]")


def export_filename(document: PastBarDocument, extension: str) -> str:
  safe_name = _UNSAFE_FILENAME_RE.sub("_", document.name or "questions")
  return f"{safe_name}-{document.year or 'unknown'}-questions.{extension}"


def _question_lines(questions: Iterable[PastBarQuestion]) -> list[str]:
  """Numbered question blocks; facts and key points only when present."""
  lines: list[str] = []
  for index, question in enumerate(questions, start=1):
    lines += [f"QUESTION {index}", f"Type: {'Situational' if question.type == 'situational' else 'Conceptual'}", ""]
    if question.context:
      lines += ["FACTS:", question.context, ""]
    lines += ["QUESTION:", question.q, "", "SUGGESTED ANSWER:", question.model_answer, ""]
    if question.key_points:
      lines.append("KEY POINTS:")
      lines += [f"• {point}" for point in question.key_points]
      lines.append("")
    lines += [_RULE, ""]
  return lines


def document_text(document: PastBarDocument, exported_at: datetime.datetime | None = None) -> str:
  exported_at = exported_at or datetime.datetime.now(datetime.UTC)
  header = [
    _BANNER,
    f"{document.name} - {document.subject} - {document.year or 'n/a'}",
    "BarBuddy Knowledge Base Export",
    f"Exported: {exported_at.isoformat(timespec='seconds')}",
    f"Total Questions: {len(document.questions)}",
    _BANNER,
    "",
  ]
  return "\n".join(header + _question_lines(document.questions))


def all_documents_text(documents: Iterable[PastBarDocument]) -> str:
  lines: list[str] = []
  for document in documents:
    lines += [_BANNER, f"{document.name} - {document.subject} - {document.year or 'n/a'}", _BANNER, ""]
    lines += _question_lines(document.questions)
    lines.append("")
  return "\n".join(lines)


def document_json(document: PastBarDocument, exported_at: datetime.datetime | None = None) -> dict[str, Any]:
  exported_at = exported_at or datetime.datetime.now(datetime.UTC)
  return {
    "name": document.name,
    "subject": document.subject,
    "year": document.year,
    "exportedAt": exported_at.isoformat(),
    "questions": [
      {"q": question.q, "type": question.type, "context": question.context or None, "modelAnswer": question.model_answer or None, "keyPoints": list(question.key_points), "subject": document.subject}
      for question in document.questions
    ],
  }
