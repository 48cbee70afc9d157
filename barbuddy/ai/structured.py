"""Structured generation: keep asking until the reply parses as JSON."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from typing import Any

from barbuddy.ai.backoff import Sleeper
from barbuddy.ai.errors import ModelInvocationError
from barbuddy.ai.invoker import ModelInvoker
from barbuddy.ai.json_parser import extract_json
from barbuddy.ai.providers.base import ChatTurn

logger = logging.getLogger(__name__)

JSON_HINT = "\n\nRespond with valid JSON only."
STRICT_JSON_DIRECTIVE = "\n\nCRITICAL: Your previous reply could not be parsed. Output ONLY a single JSON literal: no prose, no markdown fences, no comments. Start with { or [ and end with } or ]. If you cannot fully comply, output {}."

_EXISTING_JSON_INSTRUCTION_RE = re.compile(r"(respond|return|reply|output)\s+(only\s+)?(with\s+)?(valid\s+)?json|json\s+only", re.IGNORECASE)

PARSE_RETRY_DELAY_SECONDS = 2.0
ERROR_RETRY_DELAY_SECONDS = 3.0


def _last_user_index(turns: Sequence[ChatTurn]) -> int | None:
  for index in range(len(turns) - 1, -1, -1):
    if turns[index]["role"] == "user":
      return index
  return None


def build_attempt_messages(messages: Sequence[ChatTurn], attempt: int) -> list[ChatTurn]:
  """Return the turns for one attempt with the JSON instruction applied to the last user turn."""
  turns = [ChatTurn(role=turn["role"], content=turn["content"]) for turn in messages]
  index = _last_user_index(turns)
  if index is None:
    turns.append(ChatTurn(role="user", content=""))
    index = len(turns) - 1

  content = turns[index]["content"]
  if attempt == 0:
    # Avoid stacking a second, possibly conflicting, JSON instruction.
    if not _EXISTING_JSON_INSTRUCTION_RE.search(content):
      content += JSON_HINT
  else:
    content += STRICT_JSON_DIRECTIVE
  turns[index] = ChatTurn(role="user", content=content)
  return turns


class StructuredInvoker:
  """Guarantee a parsed JSON value from the model, or ``None``."""

  def __init__(self, invoker: ModelInvoker, *, retries: int = 3, sleep: Sleeper = asyncio.sleep) -> None:
    if retries < 1:
      raise ValueError("retries must be at least 1")
    self._invoker = invoker
    self._retries = retries
    self._sleep = sleep

  async def invoke(self, messages: Sequence[ChatTurn], max_tokens: int = 2000, *, system: str | None = None, retries: int | None = None) -> Any | None:
    """Return the first parsed JSON value, or ``None`` once retries are exhausted.

    Model errors propagate only from the final attempt; malformed output never raises.
    """
    budget = retries if retries is not None else self._retries
    if budget < 1:
      raise ValueError("retries must be at least 1")

    for attempt in range(budget):
      is_last = attempt == budget - 1
      turns = build_attempt_messages(messages, attempt)

      try:
        raw = await self._invoker.invoke(turns, max_tokens, system=system)
      except ModelInvocationError as exc:
        if is_last:
          raise
        logger.warning("Structured call attempt %d/%d failed: %s; retrying", attempt + 1, budget, exc)
        await self._sleep(ERROR_RETRY_DELAY_SECONDS)
        continue

      parsed = extract_json(raw)
      if parsed is not None:
        return parsed

      logger.warning("Structured call attempt %d/%d returned unparseable output", attempt + 1, budget)
      if not is_last:
        await self._sleep(PARSE_RETRY_DELAY_SECONDS)

    logger.error("Structured call gave up after %d attempts", budget)
    return None

  async def invoke_prompt(self, prompt: str, max_tokens: int = 2000, **kwargs: Any) -> Any | None:
    """Convenience wrapper for a single user prompt."""
    return await self.invoke([ChatTurn(role="user", content=prompt)], max_tokens, **kwargs)
