"""Unit tests for lenient JSON extraction."""

from __future__ import annotations

import json

import pytest

from barbuddy.ai.json_parser import STRATEGIES, extract_json


@pytest.mark.parametrize("raw", ['{"a": 1, "b": [1, 2, {"c": null}]}', "[1, 2, 3]", '{"nested": {"deep": {"x": "y"}}}', '  {"padded": true}  '])
def test_valid_json_matches_json_loads(raw: str) -> None:
  assert extract_json(raw) == json.loads(raw)


def test_fenced_block_with_surrounding_prose() -> None:
  raw = 'Here is the result:\n```json\n{"a":1}\n```\nHope that helps!'
  assert extract_json(raw) == {"a": 1}


def test_untagged_fence() -> None:
  assert extract_json("```\n[1, 2]\n```") == [1, 2]


def test_object_embedded_in_prose() -> None:
  assert extract_json('Sure! {"lesson": {"pages": []}} Let me know.') == {"lesson": {"pages": []}}


def test_array_embedded_in_prose_when_no_object() -> None:
  assert extract_json("Questions follow: [1, 2, 3] done") == [1, 2, 3]


def test_trailing_commas_and_bare_keys_are_repaired() -> None:
  raw = "Result: {questions: [{q: \"Is X liable?\", keyPoints: [\"a\", \"b\",],},],}"
  assert extract_json(raw) == {"questions": [{"q": "Is X liable?", "keyPoints": ["a", "b"]}]}


def test_repair_leaves_string_contents_alone() -> None:
  raw = '{note: "ratio: 1, decidendi", count: 2,}'
  assert extract_json(raw) == {"note": "ratio: 1, decidendi", "count": 2}


def test_refusal_returns_none_without_raising() -> None:
  assert extract_json("I cannot help with that.") is None


@pytest.mark.parametrize("raw", ["", "   ", None, "{not json at all", "null"])
def test_unusable_input_returns_none(raw) -> None:
  assert extract_json(raw) is None


def test_failure_logs_truncated_output(caplog: pytest.LogCaptureFixture) -> None:
  raw = "x" * 2000
  with caplog.at_level("WARNING", logger="barbuddy.ai.json_parser"):
    assert extract_json(raw) is None
  messages = [record.getMessage() for record in caplog.records]
  assert any("x" * 500 in message and "x" * 501 not in message for message in messages)


def test_strategy_order_is_fixed() -> None:
  assert [name for name, _ in STRATEGIES] == ["direct", "fenced", "greedy", "bracket", "repaired"]


@pytest.mark.parametrize("raw", ["NaN", "Infinity", "-Infinity", '{"score": NaN}', "[1, Infinity]"])
def test_non_standard_constants_are_malformed(raw: str) -> None:
  assert extract_json(raw) is None
