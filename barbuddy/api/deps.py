from __future__ import annotations

from fastapi import Request

from barbuddy.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
  """Return the service container the lifespan stored on the application."""
  return request.app.state.services
