"""Model invoker: one logical model call across the tiered fallback schedule."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from barbuddy.ai.backoff import RetryableAttemptError, RetrySchedule, ScheduleStep, Sleeper, run_with_schedule
from barbuddy.ai.errors import OverloadedError, ProviderError, error_message_of, error_type_of, is_overloaded_reply
from barbuddy.ai.providers.base import ChatProvider, ChatTurn, ModelRequest

logger = logging.getLogger(__name__)

# Every generation call is restricted to uploaded materials.
STRICT_SYSTEM_PROMPT = """You are a content extraction and organization assistant for a Philippine Bar Exam review platform. Your ONLY role is to read the uploaded reference materials provided and organize their content into structured study materials.

ABSOLUTE RULES:
- Only use information explicitly written in the provided reference materials
- Never add any doctrine, case, G.R. number, article number, statute, or legal principle that does not appear in the provided materials
- Never invent or guess. If something is not in the materials, do not include it
- Every lesson point must quote or directly paraphrase a specific passage from the materials
- Every quiz question must test something explicitly stated in the materials
- Every answer and explanation must cite which part of the uploaded material it came from
- If the uploaded materials do not have enough content to generate a section, write exactly: [Not covered in uploaded materials]
- You are an analyst and organizer, not a content creator"""


class _Overloaded(RetryableAttemptError):
  pass


class ModelInvoker:
  """Ask the model once, hiding overload retries and tier fallback from callers."""

  def __init__(self, provider: ChatProvider, schedule: RetrySchedule, *, system_prompt: str | None = STRICT_SYSTEM_PROMPT, sleep: Sleeper = asyncio.sleep) -> None:
    self._provider = provider
    self._schedule = schedule
    self._system_prompt = system_prompt
    self._sleep = sleep

  async def invoke(self, messages: Sequence[ChatTurn], max_tokens: int = 2000, *, system: str | None = None) -> str:
    """Return the concatenated text of the first successful reply.

    Raises ``OverloadedError`` when every scheduled attempt was overloaded and
    ``ProviderError`` as soon as any attempt returns a hard error.
    """
    turns = [ChatTurn(role=turn["role"], content=turn["content"]) for turn in messages]
    system_text = system if system is not None else self._system_prompt

    async def attempt(step: ScheduleStep, index: int) -> str:
      request = ModelRequest(model=step.tier, messages=turns, max_tokens=max_tokens, system=system_text)
      reply = await self._provider.send(request)

      if is_overloaded_reply(reply.status_code, reply.body):
        logger.warning("Provider overloaded on attempt %d/%d (%s, status %s)", index + 1, len(self._schedule), step.tier, reply.status_code)
        raise _Overloaded(step.tier)

      if "error" in reply.body or reply.status_code >= 400:
        message = error_message_of(reply.body) or f"Provider returned HTTP {reply.status_code}"
        raise ProviderError(message, status_code=reply.status_code, error_type=error_type_of(reply.body))

      if index > 0:
        logger.info("Provider call succeeded on attempt %d with %s", index + 1, step.tier)
      return reply.text()

    return await run_with_schedule(attempt, self._schedule, sleep=self._sleep, on_exhausted=lambda _exc: OverloadedError())
