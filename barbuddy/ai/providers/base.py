"""Base contracts for chat-completion providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, TypedDict


class ChatTurn(TypedDict):
  """One conversation turn in provider wire shape."""

  role: Literal["user", "assistant"]
  content: str


@dataclass(frozen=True)
class ModelRequest:
  """Everything a provider needs for one call."""

  model: str
  messages: list[ChatTurn]
  max_tokens: int
  system: str | None = None


@dataclass
class ProviderReply:
  """Raw provider reply: HTTP status plus the decoded JSON body."""

  status_code: int
  body: dict[str, Any] = field(default_factory=dict)

  def text(self) -> str:
    """Concatenate every text block of the reply."""
    blocks = self.body.get("content") or []
    return "".join(str(block.get("text") or "") for block in blocks if isinstance(block, dict))


class ChatProvider(Protocol):
  """Anything that can send a ``ModelRequest`` and return a ``ProviderReply``."""

  name: str

  async def send(self, request: ModelRequest, *, timeout_seconds: float | None = None) -> ProviderReply:
    """Send one request. Transport failures raise ``ProviderError``."""
    ...
