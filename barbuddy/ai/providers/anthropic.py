"""Anthropic Messages API provider over httpx."""

from __future__ import annotations

import json
import logging
from typing import Any, Final

import httpx

from barbuddy.ai.errors import ProviderError
from barbuddy.ai.providers.base import ModelRequest, ProviderReply

logger = logging.getLogger(__name__)


class AnthropicProvider:
  """Send chat requests to the Anthropic Messages endpoint."""

  _API_VERSION: Final[str] = "2023-06-01"
  _MESSAGES_PATH: Final[str] = "/v1/messages"

  def __init__(self, api_key: str | None, *, base_url: str = "https://api.anthropic.com", timeout_seconds: float = 120.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self.name: str = "anthropic"
    self._api_key = api_key
    self._base_url = base_url.rstrip("/")
    self._timeout = timeout_seconds
    # Injected transports keep tests off the network.
    self._transport = transport

  @property
  def configured(self) -> bool:
    return bool(self._api_key)

  def _headers(self) -> dict[str, str]:
    if not self._api_key:
      raise ProviderError("ANTHROPIC_API_KEY is not configured.")
    return {"content-type": "application/json", "x-api-key": self._api_key, "anthropic-version": self._API_VERSION}

  def _payload(self, request: ModelRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {"model": request.model, "max_tokens": request.max_tokens, "messages": list(request.messages)}
    if request.system:
      payload["system"] = request.system
    return payload

  async def send(self, request: ModelRequest, *, timeout_seconds: float | None = None) -> ProviderReply:
    """POST one request and return the raw status plus decoded body."""
    headers = self._headers()
    timeout = timeout_seconds if timeout_seconds is not None else self._timeout
    try:
      async with httpx.AsyncClient(base_url=self._base_url, timeout=timeout, transport=self._transport, trust_env=False) as client:
        response = await client.post(self._MESSAGES_PATH, json=self._payload(request), headers=headers)
    except httpx.TimeoutException as exc:
      # An unresponsive provider is a hard error; the schedule does not retry it.
      raise ProviderError(f"Provider timed out after {timeout:.0f}s", error_type="timeout") from exc
    except httpx.RequestError as exc:
      raise ProviderError(f"Provider request failed: {exc}", error_type="transport") from exc

    try:
      body = response.json()
    except json.JSONDecodeError:
      logger.warning("Provider returned non-JSON body with status %s", response.status_code)
      body = {"error": {"type": "invalid_response", "message": response.text[:500] or f"HTTP {response.status_code}"}}

    if not isinstance(body, dict):
      body = {"error": {"type": "invalid_response", "message": "Unexpected response shape."}}

    return ProviderReply(status_code=response.status_code, body=body)
