"""Grade free-text exam answers with a rubric chosen from the question's format."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from barbuddy.ai.structured import StructuredInvoker
from barbuddy.storage.knowledge_base import KnowledgeBase

logger = logging.getLogger(__name__)

QuestionFormat = Literal["truefalse", "mcq", "enumeration", "definition", "essay"]

MAX_TOKENS_BY_FORMAT: dict[str, int] = {"truefalse": 600, "mcq": 700, "enumeration": 800, "definition": 800, "essay": 2000}

_CHOICE_LABEL_RE = re.compile(r"\ba\.\s|\bb\.\s|\bc\.\s")

GRADE_SCALE = """Assign grade based on numericScore (passing score is 7.0/10):
  Excellent:          8.5 and above
  Good:               7.0 to 8.4  <- passing starts here
  Satisfactory:       5.5 to 6.9
  Needs Improvement:  4.0 to 5.4
  Poor:               below 4.0"""

_GRADE_FIELDS = '"score": "X/10", "numericScore": 0, "grade": "Excellent|Good|Satisfactory|Needs Improvement|Poor"'


def detect_question_format(question: str) -> QuestionFormat:
  """Classify a question by keyword rules; anything unrecognised is an essay."""
  text = question.lower()
  if "true or false" in text or "true/false" in text or text.startswith("t/f") or "state whether" in text:
    return "truefalse"
  if any(marker in text for marker in ("which of the following", "choose the correct", "select the best")) or _CHOICE_LABEL_RE.search(text) or ("(a)" in text and "(b)" in text):
    return "mcq"
  if any(marker in text for marker in ("enumerate", "list the", "what are the requisites", "what are the elements", "what are the requirements", "give the", "name the")):
    return "enumeration"
  if any(marker in text for marker in ("define ", "what is meant by", "distinguish between", "differentiate", "what do you understand by")):
    return "definition"
  if text.startswith("what is") and not any(word in text for word in ("liable", "right", "remedy")):
    return "definition"
  return "essay"


@dataclass(frozen=True)
class EvaluationRequest:
  question: str
  answer: str
  model_answer: str = ""
  key_points: Sequence[str] = field(default_factory=tuple)
  subject: str | None = None


def _line(label: str, value: str) -> str:
  return f"{label}: {value}\n" if value else ""


def _truefalse_prompt(request: EvaluationRequest) -> str:
  return (
    "You are a Philippine Bar Exam examiner. Evaluate this True or False answer.\n\n"
    f"Question: {request.question}\n{_line('Correct Answer / Explanation', request.model_answer)}Student Answer: {request.answer}\n\n"
    "Score out of 10:\n"
    "  10/10 - Correct answer WITH a correct explanation of why it is true or false\n"
    "  7/10  - Correct answer with a partial or vague explanation\n"
    "  5/10  - Correct answer (True/False) but no explanation given\n"
    "  0/10  - Wrong answer regardless of explanation\n\n"
    f"{GRADE_SCALE}\n\n"
    "Respond ONLY with valid JSON (no markdown):\n"
    f'{{{_GRADE_FIELDS}, "isCorrect": true, "overallFeedback": "Brief assessment of the student\'s answer", '
    '"correctAnswer": "What the correct answer is and why", "modelAnswer": "The complete correct answer with full legal basis", "format": "truefalse"}'
  )


def _mcq_prompt(request: EvaluationRequest) -> str:
  return (
    "You are a Philippine Bar Exam examiner. Evaluate this Multiple Choice answer.\n\n"
    f"Question: {request.question}\n{_line('Correct Answer', request.model_answer)}Student Answer: {request.answer}\n\n"
    "Score out of 10:\n"
    "  10/10 - Correct choice WITH correct legal reasoning\n"
    "  7/10  - Correct choice but weak or incomplete reasoning\n"
    "  5/10  - Wrong choice but reasoning shows partial understanding of the applicable law\n"
    "  0/10  - Wrong choice with no reasoning or completely wrong reasoning\n\n"
    f"{GRADE_SCALE}\n\n"
    "Respond ONLY with valid JSON (no markdown):\n"
    f'{{{_GRADE_FIELDS}, "isCorrect": true, "overallFeedback": "Brief assessment", "whyCorrect": "Why the correct answer is right, with legal basis", '
    '"whyOthersWrong": "Why the other options are incorrect", "modelAnswer": "The complete correct answer with legal reasoning", "format": "mcq"}'
  )


def _enumeration_prompt(request: EvaluationRequest) -> str:
  expected = "\n".join(request.key_points) if request.key_points else request.model_answer
  expected_block = f"Expected Points / Key Items:\n{expected}\n" if expected else ""
  return (
    "You are a Philippine Bar Exam examiner. Evaluate this Enumeration answer.\n\n"
    f"Question: {request.question}\n{expected_block}Student Answer: {request.answer}\n\n"
    "Count how many required points the student correctly stated.\n"
    "Award points proportionally: divide 10 by the number of required items to get points per item.\n"
    "Award full item credit if the student stated the substance correctly even if wording differs.\n"
    "Award half item credit if partially correct.\n\n"
    f"{GRADE_SCALE}\n\n"
    "Respond ONLY with valid JSON (no markdown):\n"
    f'{{{_GRADE_FIELDS}, "itemsRequired": 5, "itemsCorrect": 3, "itemsMissed": ["missed item"], "itemsWrong": ["incorrect item stated by student"], '
    '"overallFeedback": "Brief assessment", "modelAnswer": "Complete enumeration with all required items", "format": "enumeration"}'
  )


def _definition_prompt(request: EvaluationRequest) -> str:
  key_points = ", ".join(request.key_points)
  return (
    "You are a Philippine Bar Exam examiner. Evaluate this Definition or Distinction answer.\n\n"
    f"Question: {request.question}\n{_line('Model Answer', request.model_answer)}{_line('Key Points', key_points)}Student Answer: {request.answer}\n\n"
    "Score out of 10 using these components:\n"
    "  Accuracy     (4 pts): Is the definition or distinction legally correct?\n"
    "  Completeness (3 pts): Are all essential elements or points of difference included?\n"
    "  Clarity      (3 pts): Is it stated clearly and precisely in legal language?\n\n"
    "For distinguish/differentiate questions, evaluate whether the student correctly identified the key points of difference between the two concepts.\n\n"
    f"{GRADE_SCALE}\n\n"
    "Respond ONLY with valid JSON (no markdown):\n"
    f'{{{_GRADE_FIELDS}, "breakdown": {{"accuracy": {{"score": 0.0, "max": 4, "feedback": "..."}}, "completeness": {{"score": 0.0, "max": 3, "feedback": "..."}}, '
    '"clarity": {"score": 0.0, "max": 3, "feedback": "..."}}, "overallFeedback": "Brief assessment", "keyMissed": ["missed element"], '
    '"modelAnswer": "Complete model definition or distinction", "format": "definition"}'
  )


_ALAC_RUBRIC = """Score each ALAC component using these weights, which reflect Philippine Bar Exam priorities (total = 10 points):

A - Answer (1.5 pts): Direct answer to the question upfront.

L - Legal Basis (3.0 pts): Does the student know WHAT law or doctrine governs the issue?
  3.0 - Correctly named an applicable recognised doctrine or principle, OR accurately stated the substance of the governing rule, OR cited a correct article, statute or G.R. number.
  2.0 - Right area of law and a mostly correct but incomplete rule, or the right doctrine slightly misapplied.
  1.0 - Only the general subject area, or a rule that is tangential to the issue.
  0   - No legal basis, a wholly inapplicable rule, or an invented doctrine.
Do NOT deduct points for missing article numbers, G.R. numbers or codal provisions; the substance of the rule matters.

A - Application (4.0 pts): HIGHEST WEIGHT. Full points only when the rule is explicitly connected to the specific parties and facts. Partial credit for general application. Zero for restating the law without applying it.

C - Conclusion (1.5 pts): Clear restatement of the answer with finality."""


def _essay_prompt(request: EvaluationRequest, reference_context: str) -> str:
  key_points = ", ".join(request.key_points)
  context_block = f"\nLegal Reference Context:\n{reference_context}\n" if reference_context else ""
  return (
    "You are a Philippine Bar Exam examiner. Evaluate this student answer using the ALAC method (Answer, Legal Basis, Application, Conclusion), "
    "the standard format required in the Philippine Bar Exam.\n\n"
    f"Question: {request.question}\n{_line('Reference Answer', request.model_answer)}{_line('Key Points to Check', key_points)}{context_block}\n"
    f"Student Answer: {request.answer}\n\n{_ALAC_RUBRIC}\n\n{GRADE_SCALE}\n\n"
    "Respond ONLY with valid JSON (no markdown):\n"
    f'{{{_GRADE_FIELDS}, "alac": {{"answer": {{"score": 1.2, "max": 1.5, "feedback": "...", "studentDid": "..."}}, '
    '"legalBasis": {"score": 2.5, "max": 3.0, "feedback": "...", "studentDid": "..."}, '
    '"application": {"score": 2.8, "max": 4.0, "feedback": "...", "studentDid": "..."}, '
    '"conclusion": {"score": 1.2, "max": 1.5, "feedback": "...", "studentDid": "..."}}, '
    '"overallFeedback": "2-3 sentence overall assessment", "strengths": ["..."], "improvements": ["..."], "keyMissed": ["..."], '
    '"modelAnswer": "ANSWER: ...\\nLEGAL BASIS: ...\\nAPPLICATION: ...\\nCONCLUSION: ...", "format": "essay"}'
  )


def build_evaluation_prompt(request: EvaluationRequest, question_format: QuestionFormat, reference_context: str = "") -> str:
  if question_format == "truefalse":
    return _truefalse_prompt(request)
  if question_format == "mcq":
    return _mcq_prompt(request)
  if question_format == "enumeration":
    return _enumeration_prompt(request)
  if question_format == "definition":
    return _definition_prompt(request)
  return _essay_prompt(request, reference_context)


class AnswerEvaluator:
  def __init__(self, *, structured: StructuredInvoker, knowledge: KnowledgeBase) -> None:
    self._structured = structured
    self._knowledge = knowledge

  def reference_context(self, subject: str | None) -> str:
    """Summary of the subject's first reference, used only by the essay rubric."""
    if not subject:
      return ""
    references = self._knowledge.references_for(subject)
    if not references or references[0].summary == "processing":
      return ""
    return references[0].summary

  async def evaluate(self, request: EvaluationRequest) -> dict[str, Any] | None:
    """Return the graded result with a ``format`` key, or ``None`` if no result parsed."""
    question_format = detect_question_format(request.question)
    context = self.reference_context(request.subject) if question_format == "essay" else ""
    prompt = build_evaluation_prompt(request, question_format, context)
    result = await self._structured.invoke_prompt(prompt, MAX_TOKENS_BY_FORMAT[question_format])
    if not isinstance(result, dict):
      logger.warning("Evaluation for a %s question produced no structured result", question_format)
      return None
    if not result.get("format"):
      result["format"] = question_format
    return result
