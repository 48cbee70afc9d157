"""Fast line-based syllabus parser; no model calls."""

from __future__ import annotations

import re
from dataclasses import dataclass

from barbuddy.schema.knowledge import SyllabusSubject, SyllabusTopic

HEADING_MAX_CHARS = 150
TOPIC_MIN_CHARS = 3
TOPIC_MAX_CHARS = 200
TOPIC_MAX_INDENT = 3

_TOPIC_LINE_RE = re.compile(r"^(?:[IVXivx]+[.)]\s+|\d+[.)]\s+|[A-Za-z][.)]\s+|[-•·*]\s+)(.+)")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


@dataclass(frozen=True)
class SubjectPattern:
  key: str
  name: str
  patterns: tuple[str, ...]


SUBJECT_PATTERNS: tuple[SubjectPattern, ...] = (
  SubjectPattern("civil", "Civil Law", ("civil law", "obligations and contracts", "family code", "property", "succession law", "obligations")),
  SubjectPattern("labor", "Labor Law", ("labor law", "social legislation", "employment", "labor standard", "labor relation")),
  SubjectPattern("political", "Political Law", ("political law", "constitutional law", "public international", "administrative law", "constitutional")),
  SubjectPattern("commercial", "Commercial Law", ("commercial law", "corporation code", "negotiable instruments", "insurance", "banking", "securities", "transport law")),
  SubjectPattern("criminal", "Criminal Law", ("criminal law", "revised penal code", "special penal", "special laws", "penal code")),
  SubjectPattern("taxation", "Taxation", ("taxation", "internal revenue", "tariff", "tax code", "income tax", "national tax")),
  SubjectPattern("remedial", "Remedial Law", ("remedial law", "civil procedure", "criminal procedure", "evidence", "special proceedings", "rules of court")),
  SubjectPattern("ethics", "Legal and Judicial Ethics", ("legal ethics", "judicial ethics", "code of professional", "practical exercise", "notarial", "bar matters")),
)


def _match_heading(line: str) -> SubjectPattern | None:
  if len(line) >= HEADING_MAX_CHARS:
    return None
  lower = line.lower()
  for subject in SUBJECT_PATTERNS:
    if any(pattern in lower for pattern in subject.patterns):
      return subject
  return None


def _indent_of(raw_line: str) -> int:
  return len(raw_line) - len(raw_line.lstrip())


def parse_syllabus_text(content: str) -> list[SyllabusSubject]:
  """Group numbered or bulleted lines under the subject headings they follow.

  Shallow lines become topics, deeper-indented lines become subtopics of the
  previous topic. Subjects appear in first-heading order.
  """
  subjects: dict[str, SyllabusSubject] = {}
  current: str | None = None
  last_topic: SyllabusTopic | None = None

  for raw_line in _LINE_SPLIT_RE.split(content):
    line = raw_line.strip()
    if not line:
      continue

    heading = _match_heading(line)
    if heading is not None:
      current = heading.key
      subjects.setdefault(heading.key, SyllabusSubject(key=heading.key, name=heading.name))
      last_topic = None

    if current is None:
      continue
    match = _TOPIC_LINE_RE.match(line)
    if match is None:
      continue
    name = match.group(1).strip()
    if not TOPIC_MIN_CHARS <= len(name) <= TOPIC_MAX_CHARS:
      continue

    subject = subjects[current]
    if _indent_of(raw_line) <= TOPIC_MAX_INDENT or not subject.topics:
      last_topic = SyllabusTopic(name=name, subject=current)
      subject.topics.append(last_topic)
    elif last_topic is not None:
      last_topic.subtopics.append(name)

  return list(subjects.values())
