import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from barbuddy.config import get_settings
from barbuddy.core.logging import initialize_logging
from barbuddy.services.container import build_container


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging, build the service graph and load persisted state."""
  settings = get_settings()
  logger = logging.getLogger("barbuddy.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:  # noqa: BLE001
    # A read-only filesystem must not keep the API from serving.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  # Tests install their own container before startup.
  services = getattr(app.state, "services", None)
  if services is None:
    services = build_container(settings)
    app.state.services = services
  services.load()

  if not settings.anthropic_api_key:
    logger.warning("ANTHROPIC_API_KEY is not set; model-backed endpoints will fail until it is configured.")

  try:
    yield
  finally:
    services.close()
    logger.info("Shutdown complete.")
