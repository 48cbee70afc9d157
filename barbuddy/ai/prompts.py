"""Prompt builders for topic extraction, question generation, summarisation and grading."""

from __future__ import annotations

from collections.abc import Sequence

from barbuddy.schema.knowledge import PastBarDocument, Reference, Syllabus

TOPIC_REFERENCE_CHARS = 6000
AI_REFERENCE_LIMIT = 3
AI_REFERENCE_CHARS = 800
NO_ANSWER_MARKER = "[No suggested answer in uploaded material]"


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with their values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)
  return rendered


_TOPIC_TEMPLATE = """Below are the ONLY source materials you are allowed to use. Read them carefully, then extract and organize content for the topic: {{TOPIC}}{{SUBTOPICS}}. Subject: {{SUBJECT}} law.

SOURCE MATERIALS:
{{SOURCES}}

From these materials only:
- Extract key definitions, rules, and principles that appear in the text
- Identify any cases, articles, or statutes explicitly mentioned
- Build lesson pages using ONLY what you found in the source above
- Write MCQ questions that test concepts explicitly stated in the text
- Write essay questions based on scenarios described in the text
- For every MCQ explanation, quote or cite which passage in the source supports the answer
- If a subtopic has no coverage in the materials, write exactly: [Not covered in uploaded materials]

Respond ONLY with valid JSON (no markdown):
{
  "lesson": {"pages": [{"title": "Page 1: [title from source content]", "content": "HTML using only source material (<p>, <strong>, <em>, <ul>, <li>, <div class='definition-box'>, <div class='case-box'>, <div class='codal-box'>)", "sourceNote": "Derived from: [reference name], [passage used]"}]},
  "mcq": {"questions": [{"q": "Question testing a concept stated in the source", "options": ["A.", "B.", "C.", "D."], "answer": 0, "explanation": "Explanation citing the supporting passage", "source": "Reference: [name], [passage]"}]},
  "essay": {"questions": [{"type": "situational", "prompt": "The actual question", "context": "COMPLETE fact pattern from source", "q": "Same as prompt", "modelAnswer": "Answer using ONLY the source materials", "keyPoints": ["Point from source"], "source": "Based on: [reference name], [passage]"}]}
}

Write 2 or more lesson pages, exactly 5 MCQ questions and exactly 3 essay questions.

Essay classification:
- SITUATIONAL: specific named parties, a sequence of events, a dispute or transaction. Put the COMPLETE fact pattern in "context" and the question in "prompt" AND "q".
- CONCEPTUAL: define, distinguish, enumerate or explain a doctrine. Leave "context" empty and put the full question in "prompt" AND "q"."""


def build_topic_prompt(subject: str, topic: str, subtopics: Sequence[str], references: Sequence[Reference]) -> str:
  """Extraction-only study package prompt scoped to one subject's references."""
  sources = "\n\n---\n\n".join(f"=== SOURCE: {reference.name} ({reference.subject}) ===\n{reference.text[:TOPIC_REFERENCE_CHARS]}" for reference in references)
  subtopic_text = f" (subtopics: {', '.join(subtopics)})" if subtopics else ""
  return _replace_placeholders(_TOPIC_TEMPLATE, {"TOPIC": topic, "SUBTOPICS": subtopic_text, "SUBJECT": subject, "SOURCES": sources})


def build_question_generation_prompt(needed: int, subjects: Sequence[str] | None, syllabus: Syllabus | None, references: Sequence[Reference]) -> str:
  """Prompt for exactly ``needed`` synthetic essay questions."""
  eligible = [reference for reference in references if not subjects or reference.subject in subjects or reference.subject == "general"]
  reference_context = "\n\n".join(f"[{reference.name}]\n{_reference_digest(reference)}" for reference in eligible[:AI_REFERENCE_LIMIT])
  syllabus_context = ""
  if syllabus is not None:
    syllabus_context = "\n".join(f"{subject.name}: {', '.join(topic.name for topic in subject.topics)}" for subject in syllabus.topics)

  parts = [f"Generate exactly {needed} Philippine Bar Exam essay questions. You must return exactly {needed} questions, no more, no less."]
  if reference_context:
    parts.append(f"Base questions on these uploaded materials:\n{reference_context}")
  if syllabus_context:
    parts.append(f"Syllabus coverage:\n{syllabus_context}")
  parts.append("Each question must be a complete bar exam question with full fact pattern if situational.")
  parts.append(
    f"Respond ONLY with valid JSON: an array of exactly {needed} objects:\n"
    '[{"subject": "civil|criminal|political|labor|commercial|taxation|remedial|ethics", "q": "Complete question text", '
    '"context": "Full fact pattern if situational, empty string if conceptual", "modelAnswer": "Complete ALAC format answer", '
    '"keyPoints": ["key point 1", "key point 2"], "type": "situational|conceptual"}]'
  )
  return "\n\n".join(parts)


def _reference_digest(reference: Reference) -> str:
  if reference.summary and reference.summary != "processing":
    return reference.summary
  return reference.text[:AI_REFERENCE_CHARS]


def build_summary_prompt(content: str, name: str, subject: str) -> str:
  return (
    "Summarize the key legal concepts, doctrines, article numbers, G.R. case numbers, and topics in this Philippine law reference. "
    f"Used as AI context for bar exam content generation.\n\nMaterial: {name} ({subject})\nContent:\n{content}\n\nDense structured summary (max 600 words)."
  )


def build_chunk_summary_prompt(chunk: str, name: str, subject: str, part: int, total: int) -> str:
  return (
    "Summarize the key legal concepts, doctrines, article numbers, G.R. case numbers, and topics in this section of a Philippine law reference.\n\n"
    f"Material: {name} ({subject}) - Part {part} of {total}\nContent:\n{chunk}\n\nDense summary (max 250 words)."
  )


def build_master_summary_prompt(parts: Sequence[str], name: str, subject: str) -> str:
  joined = "\n\n".join(f"[Part {index}]\n{summary}" for index, summary in enumerate(parts, start=1))
  return f"Combine these partial summaries of a Philippine law reference into one comprehensive master summary.\n\nMaterial: {name} ({subject})\n\n{joined}\n\nMaster summary (max 1000 words, dense, structured):"


def _part_label(part: int, total: int) -> str:
  return f" | Part {part} of {total}" if total > 1 else ""


def build_past_bar_analysis_prompt(document: PastBarDocument, chunk: str, part: int, total: int) -> str:
  return (
    "This is an uploaded Philippine Bar Exam document. READ ONLY - do not add anything.\n"
    "Describe what format the questions are in (numbered, roman numerals, Q&A pairs, essay style, etc). Then identify and list every question you can find. A question is any text that:\n"
    "- Asks the reader to analyze a legal situation\n"
    "- Presents a fact pattern requiring a legal conclusion\n"
    "- Follows patterns like 'Is X liable?', 'What are the rights of...', 'Decide with reasons', 'Rule on the motion', 'May X...', 'Can Y...'\n"
    "Also note any suggested answers or model answers that appear in the document paired with questions.\n\n"
    f"Material: {document.name} ({document.year or '?'}) | Subject: {document.subject}{_part_label(part, total)}\nContent:\n{chunk}"
  )


def build_past_bar_extraction_prompt(document: PastBarDocument, analysis: str, chunk: str, part: int, total: int) -> str:
  return (
    f"Based on your analysis:\n{analysis}\n\n"
    "Now READ AND EXTRACT - do not create or invent anything:\n\n"
    "For each question identified:\n"
    "1. Copy the question text EXACTLY as written in the document\n"
    "2. Look for any answer or suggested answer that immediately follows the question in the document\n"
    "3. If an answer exists in the document, copy it EXACTLY as written\n"
    f'4. If no answer exists in the document, use exactly this text: "{NO_ANSWER_MARKER}"\n\n'
    "NEVER write a model answer from your own knowledge. Only copy what is already written in this document.\n\n"
    f"Material: {document.name} ({document.year or '?'}) | Subject: {document.subject}{_part_label(part, total)}\nContent:\n{chunk}\n\n"
    "Respond ONLY with valid JSON (no markdown fence):\n"
    f'{{"questions": [{{"q": "Exact question text", "modelAnswer": "Exact answer from document, or {NO_ANSWER_MARKER}", "keyPoints": [], "topics": ["{document.subject}"]}}]}}'
  )


def build_past_bar_fallback_prompt(document: PastBarDocument, chunk: str) -> str:
  return (
    "This is an uploaded bar exam document. READ AND EXTRACT ONLY - do not create.\n\n"
    f'Find all questions in this text. Copy each question exactly as written. If an answer appears in the text immediately after the question, copy it exactly. If no answer, use: "{NO_ANSWER_MARKER}"\n\n'
    f'Return ONLY:\n{{"questions": [{{"q": "exact question text", "modelAnswer": "exact answer from document or {NO_ANSWER_MARKER}", "keyPoints": [], "topics": ["{document.subject}"]}}]}}\n\n'
    f"Text:\n{chunk[:6000]}"
  )
