"""Lenient JSON extraction for LLM outputs.

Models wrap JSON in prose, markdown fences, or emit JS-style objects with
trailing commas and bare keys. ``extract_json`` runs a fixed sequence of
candidate strategies and returns the first value that parses, or ``None``.
It never raises.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

_CLOSERS = {"{": "}", "[": "]"}
_DIAGNOSTIC_CHARS = 500

CandidateStrategy = Callable[[str], Iterable[str]]


def _whole_text(raw: str) -> Iterable[str]:
  """The reply as-is; well-behaved models need nothing more."""
  yield raw


def _fenced_block(raw: str) -> Iterable[str]:
  """Interior of the first markdown code fence, tagged `json` or not."""
  match = _FENCE_RE.search(raw)
  if match:
    yield match.group(1).strip()


def _greedy_span(raw: str) -> Iterable[str]:
  # Objects first; arrays only when no object span parses.
  for pattern in (_OBJECT_RE, _ARRAY_RE):
    match = pattern.search(raw)
    if match:
      yield match.group(0)


def _outer_slice(raw: str) -> str | None:
  """Slice from the earliest opening bracket to the last matching closer."""
  starts = [index for index in (raw.find("{"), raw.find("[")) if index != -1]
  if not starts:
    return None
  start = min(starts)
  end = raw.rfind(_CLOSERS[raw[start]])
  if end <= start:
    return None
  return raw[start : end + 1]


def _bracket_slice(raw: str) -> Iterable[str]:
  """Outermost bracketed span, for replies with prose on both sides."""
  candidate = _outer_slice(raw)
  if candidate is not None:
    yield candidate


def _repaired_slice(raw: str) -> Iterable[str]:
  """Outermost span after fixing trailing commas and bare keys."""
  repaired = _quote_unquoted_keys(_strip_trailing_commas(raw))
  candidate = _outer_slice(repaired)
  if candidate is not None:
    yield candidate


# Order matters: a later strategy only runs when every earlier one failed.
STRATEGIES: tuple[tuple[str, CandidateStrategy], ...] = (
  ("direct", _whole_text),
  ("fenced", _fenced_block),
  ("greedy", _greedy_span),
  ("bracket", _bracket_slice),
  ("repaired", _repaired_slice),
)


def _reject_constant(name: str) -> Any:
  # NaN and Infinity are not JSON even though the decoder accepts them.
  raise ValueError(f"non-standard JSON constant {name}")


def _try_parse(candidate: str) -> Any | None:
  try:
    return json.loads(candidate, parse_constant=_reject_constant)
  except (ValueError, RecursionError):
    return None


def extract_json(raw: str | None) -> Any | None:
  """Return the first JSON value recoverable from ``raw``, or ``None``."""
  if not isinstance(raw, str) or not raw.strip():
    logger.warning("JSON extraction skipped: empty model output")
    return None

  text = raw.strip()
  for name, strategy in STRATEGIES:
    for candidate in strategy(text):
      parsed = _try_parse(candidate)
      if parsed is not None:
        if name != "direct":
          logger.debug("JSON recovered with %s strategy", name)
        return parsed

  logger.warning("JSON extraction failed. Raw output (first %d chars): %s", _DIAGNOSTIC_CHARS, text[:_DIAGNOSTIC_CHARS])
  return None


def _strip_trailing_commas(raw: str) -> str:
  """Remove trailing commas before closing brackets."""
  return _TRAILING_COMMA_RE.sub(r"\1", raw)


def _quote_unquoted_keys(raw: str) -> str:
  """Wrap bare object keys in double quotes, leaving string contents untouched."""
  output: list[str] = []
  in_string = False
  escape = False
  expecting_key = False
  index = 0

  while index < len(raw):
    char = raw[index]

    if in_string:
      output.append(char)
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      index += 1
      continue

    if char == '"':
      output.append(char)
      in_string = True
      index += 1
      continue

    if char in "{,":
      output.append(char)
      expecting_key = True
      index += 1
      continue

    if char in "}:[]":
      output.append(char)
      expecting_key = False
      index += 1
      continue

    # Identifier followed by a colon in key position becomes a quoted key.
    if expecting_key and (char.isalpha() or char == "_"):
      start = index
      while index < len(raw) and (raw[index].isalnum() or raw[index] in "_-"):
        index += 1
      key = raw[start:index]
      lookahead = index
      while lookahead < len(raw) and raw[lookahead].isspace():
        lookahead += 1
      if lookahead < len(raw) and raw[lookahead] == ":":
        output.append(f'"{key}"')
        expecting_key = False
      else:
        output.append(key)
      continue

    output.append(char)
    index += 1

  return "".join(output)
