"""Error taxonomy and classification helpers for provider handling."""

from __future__ import annotations

from typing import Any

OVERLOAD_STATUS_CODES: frozenset[int] = frozenset({429, 529})
OVERLOAD_ERROR_TYPES: frozenset[str] = frozenset({"overloaded_error", "rate_limit_error"})


class ModelInvocationError(RuntimeError):
  """Base class for failures raised by the model invoker."""


class OverloadedError(ModelInvocationError):
  """Provider stayed rate-limited or over capacity for the whole schedule."""

  def __init__(self, message: str = "API overloaded - please try again in a few minutes") -> None:
    super().__init__(message)


class ProviderError(ModelInvocationError):
  """Provider returned a non-overload application error."""

  def __init__(self, message: str, *, status_code: int | None = None, error_type: str | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.error_type = error_type


def error_type_of(body: Any) -> str | None:
  """Return the provider error type from a decoded response body."""
  if not isinstance(body, dict):
    return None
  error = body.get("error")
  if isinstance(error, dict):
    value = error.get("type")
    return str(value) if value is not None else None
  return None


def error_message_of(body: Any) -> str | None:
  """Return the provider error message from a decoded response body."""
  if not isinstance(body, dict):
    return None
  error = body.get("error")
  if isinstance(error, dict):
    message = error.get("message")
    return str(message) if message else None
  if isinstance(error, str):
    return error
  return None


def is_overloaded_reply(status_code: int, body: Any) -> bool:
  """Return True when the provider signalled rate limiting or exhausted capacity."""
  return status_code in OVERLOAD_STATUS_CODES or error_type_of(body) in OVERLOAD_ERROR_TYPES
