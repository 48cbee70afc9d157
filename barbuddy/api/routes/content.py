import logging
from typing import Any

from fastapi import APIRouter, Depends

from barbuddy.api.deps import get_services
from barbuddy.schema.knowledge import SUBJECT_KEYS
from barbuddy.services.container import ServiceContainer

router = APIRouter()
logger = logging.getLogger("barbuddy.api.routes.content")


@router.get("/content")
async def list_content(subject: str | None = None, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Dump cached content, optionally for a single known subject."""
  if subject and subject in SUBJECT_KEYS and services.content.has_subject(subject):
    return services.content.to_json([subject])
  return services.content.to_json()


@router.get("/content/{subject}/{topic:path}")
async def get_topic_content(subject: str, topic: str, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Content for one topic; sentinel entries are returned as found with their status."""
  entry = services.content.get(subject, topic)
  if entry is None:
    return {"found": False}
  return {"found": True, **entry.to_json()}


@router.delete("/admin/content")
async def clear_content(services: ServiceContainer = Depends(get_services)) -> dict[str, bool]:  # noqa: B008
  services.content.clear()
  services.content.persist()
  logger.info("Content cache cleared")
  return {"success": True}
