"""Unit tests for the tiered model invoker and its retry schedule."""

from __future__ import annotations

import pytest

from barbuddy.ai.backoff import RetryableAttemptError, RetrySchedule, ScheduleStep, run_with_schedule
from barbuddy.ai.errors import OverloadedError, ProviderError, is_overloaded_reply
from barbuddy.ai.invoker import STRICT_SYSTEM_PROMPT, ModelInvoker
from barbuddy.ai.providers.base import ChatTurn, ModelRequest, ProviderReply
from tests.fakes import FakeProvider, RecordingSleep, error_reply, overloaded_reply, text_reply

SCHEDULE = RetrySchedule.tiered("tier-a", "tier-b")
MESSAGES = [ChatTurn(role="user", content="hello")]


def test_tiered_schedule_is_data() -> None:
  assert [step.tier for step in SCHEDULE.steps] == ["tier-a", "tier-a", "tier-b", "tier-b"]
  assert SCHEDULE.delays == [0.0, 20.0, 0.0, 60.0]
  assert len(SCHEDULE) == 4


def test_empty_schedule_is_rejected() -> None:
  with pytest.raises(ValueError):
    RetrySchedule(steps=())


@pytest.mark.parametrize(
  ("status_code", "body", "expected"),
  [
    (529, {}, True),
    (429, {}, True),
    (200, {"error": {"type": "overloaded_error"}}, True),
    (400, {"error": {"type": "invalid_request_error"}}, False),
    (200, {"content": []}, False),
  ],
)
def test_overload_classification(status_code: int, body: dict, expected: bool) -> None:
  assert is_overloaded_reply(status_code, body) is expected


@pytest.mark.anyio
async def test_always_overloaded_makes_four_attempts_with_scheduled_waits() -> None:
  sleep = RecordingSleep()
  started_at: list[float] = []

  def script(request: ModelRequest) -> ProviderReply:
    started_at.append(sleep.now)
    return overloaded_reply()

  provider = FakeProvider(script)
  invoker = ModelInvoker(provider, SCHEDULE, sleep=sleep)

  with pytest.raises(OverloadedError):
    await invoker.invoke(MESSAGES)

  assert len(provider.requests) == 4
  waits = [started_at[0]] + [later - earlier for earlier, later in zip(started_at, started_at[1:], strict=False)]
  assert waits == [0.0, 20.0, 0.0, 60.0]
  assert [request.model for request in provider.requests] == ["tier-a", "tier-a", "tier-b", "tier-b"]


@pytest.mark.anyio
async def test_fallback_tier_success_returns_text() -> None:
  provider = FakeProvider([overloaded_reply(), overloaded_reply(), text_reply("from fallback")])
  sleep = RecordingSleep()
  invoker = ModelInvoker(provider, SCHEDULE, sleep=sleep)

  assert await invoker.invoke(MESSAGES) == "from fallback"
  assert provider.requests[-1].model == "tier-b"
  assert sleep.calls == [20.0]


@pytest.mark.anyio
async def test_hard_error_fails_fast() -> None:
  provider = FakeProvider([error_reply("prompt is too long")])
  sleep = RecordingSleep()
  invoker = ModelInvoker(provider, SCHEDULE, sleep=sleep)

  with pytest.raises(ProviderError, match="prompt is too long") as excinfo:
    await invoker.invoke(MESSAGES)

  assert excinfo.value.status_code == 400
  assert excinfo.value.error_type == "invalid_request_error"
  assert len(provider.requests) == 1
  assert sleep.calls == []


@pytest.mark.anyio
async def test_text_blocks_are_concatenated_and_system_prompt_sent() -> None:
  reply = ProviderReply(status_code=200, body={"content": [{"type": "text", "text": "Hello, "}, {"type": "text", "text": "world"}]})
  provider = FakeProvider([reply])
  invoker = ModelInvoker(provider, SCHEDULE, sleep=RecordingSleep())

  assert await invoker.invoke(MESSAGES, 50) == "Hello, world"
  request = provider.requests[0]
  assert request.max_tokens == 50
  assert request.system == STRICT_SYSTEM_PROMPT
  assert request.messages == [{"role": "user", "content": "hello"}]


@pytest.mark.anyio
async def test_explicit_system_overrides_default() -> None:
  provider = FakeProvider([text_reply("ok")])
  invoker = ModelInvoker(provider, SCHEDULE, sleep=RecordingSleep())

  await invoker.invoke(MESSAGES, system="be brief")
  assert provider.requests[0].system == "be brief"


@pytest.mark.anyio
async def test_run_with_schedule_propagates_non_retryable_errors() -> None:
  calls: list[int] = []

  async def attempt(step: ScheduleStep, index: int) -> str:
    calls.append(index)
    raise KeyError("boom")

  with pytest.raises(KeyError):
    await run_with_schedule(attempt, SCHEDULE, sleep=RecordingSleep())
  assert calls == [0]


@pytest.mark.anyio
async def test_run_with_schedule_raises_last_retryable_without_mapper() -> None:
  async def attempt(step: ScheduleStep, index: int) -> str:
    raise RetryableAttemptError(step.tier)

  with pytest.raises(RetryableAttemptError, match="tier-b"):
    await run_with_schedule(attempt, SCHEDULE, sleep=RecordingSleep())


@pytest.mark.anyio
async def test_schedule_without_steps_raises_instead_of_returning() -> None:
  # Bypass validation to reach the executor with nothing to run.
  empty = object.__new__(RetrySchedule)
  object.__setattr__(empty, "steps", ())

  async def attempt(step: ScheduleStep, index: int) -> str:
    return "never"

  with pytest.raises(RuntimeError, match="without running an attempt"):
    await run_with_schedule(attempt, empty, sleep=RecordingSleep())
