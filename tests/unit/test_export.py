from __future__ import annotations

import datetime

from barbuddy.generation.export import all_documents_text, document_json, document_text, export_filename
from barbuddy.schema.knowledge import PastBarDocument, PastBarQuestion

EXPORTED_AT = datetime.datetime(2026, 3, 1, 9, 30, tzinfo=datetime.UTC)


def _document() -> PastBarDocument:
  return PastBarDocument(
    id="pb_1",
    name="Civil Law 2019 (Set A)",
    subject="civil",
    year="2019",
    questions=[
      PastBarQuestion(q="Is the sale valid?", context="A sold land to B orally.", model_answer="Yes, sale is consensual.", key_points=["Art. 1475"]),
      PastBarQuestion(q="Define novation.", type="conceptual"),
    ],
  )


def test_filename_replaces_unsafe_characters() -> None:
  assert export_filename(_document(), "txt") == "Civil_Law_2019__Set_A_-2019-questions.txt"


def test_text_export_lists_facts_and_key_points_only_when_present() -> None:
  text = document_text(_document(), EXPORTED_AT)

  assert "Total Questions: 2" in text
  assert "Exported: 2026-03-01T09:30:00+00:00" in text
  first, second = text.split("QUESTION 1\n", 1)[1].split("QUESTION 2\n")
  assert "FACTS:\nA sold land to B orally." in first
  assert "KEY POINTS:\n• Art. 1475" in first
  assert "Type: Conceptual" in second
  assert "FACTS:" not in second
  assert "KEY POINTS:" not in second


def test_json_export_uses_null_for_missing_text() -> None:
  payload = document_json(_document(), EXPORTED_AT)

  assert payload["exportedAt"] == "2026-03-01T09:30:00+00:00"
  assert payload["questions"][1] == {"q": "Define novation.", "type": "conceptual", "context": None, "modelAnswer": None, "keyPoints": [], "subject": "civil"}


def test_combined_export_has_a_banner_per_document() -> None:
  other = PastBarDocument(id="pb_2", name="Labor 2018", subject="labor", year="2018", questions=[PastBarQuestion(q="Was the dismissal valid?")])
  text = all_documents_text([_document(), other])
  assert "Civil Law 2019 (Set A) - civil - 2019" in text
  assert "Labor 2018 - labor - 2018" in text
  assert text.count("QUESTION 1\n") == 2
