import logging
import time
from typing import Any

from fastapi import APIRouter, Depends

from barbuddy.ai.errors import ModelInvocationError, is_overloaded_reply
from barbuddy.ai.providers.base import ChatTurn, ModelRequest
from barbuddy.api.deps import get_services
from barbuddy.api.models import StatusResponse
from barbuddy.services.container import ServiceContainer
from barbuddy.storage.knowledge_base import CONTENT_KEY, KB_KEY

router = APIRouter()
logger = logging.getLogger("barbuddy.api.routes.status")

PING_TIMEOUT_SECONDS = 10.0
PING_MAX_TOKENS = 5


@router.get("/status", response_model=StatusResponse, response_model_by_alias=True)
async def provider_status(services: ServiceContainer = Depends(get_services)) -> StatusResponse:  # noqa: B008
  """Probe the provider with a tiny request on the fallback tier."""
  queue_length = services.jobs.queue_length
  if not services.settings.anthropic_api_key:
    return StatusResponse(api_ok=False, queue_length=queue_length)

  model = services.settings.fallback_model
  start = time.monotonic()
  ping = ModelRequest(model=model, messages=[ChatTurn(role="user", content="hi")], max_tokens=PING_MAX_TOKENS)
  try:
    reply = await services.provider.send(ping, timeout_seconds=PING_TIMEOUT_SECONDS)
  except ModelInvocationError as exc:
    logger.warning("Provider ping failed: %s", exc)
    return StatusResponse(api_ok=False, latency_ms=int((time.monotonic() - start) * 1000), queue_length=queue_length)

  latency_ms = int((time.monotonic() - start) * 1000)
  api_ok = not is_overloaded_reply(reply.status_code, reply.body) and "error" not in reply.body
  return StatusResponse(api_ok=api_ok, model=model, latency_ms=latency_ms, queue_length=queue_length)


@router.get("/kb")
async def knowledge_summary(services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Knowledge-base overview without document bodies."""
  knowledge = services.knowledge
  syllabus = knowledge.syllabus
  custom_past_bar = [document for document in knowledge.past_bar if document.subject == "custom"]
  state = services.generation
  return {
    "hasSyllabus": syllabus is not None,
    "syllabusName": syllabus.name if syllabus else None,
    "syllabusTopics": [subject.to_json() for subject in syllabus.topics] if syllabus else [],
    "references": [
      {"id": reference.id, "name": reference.name, "subject": reference.subject, "type": reference.type, "size": reference.size, "summaryReady": reference.summary != "processing", "uploadedAt": reference.uploaded_at}
      for reference in knowledge.references
    ],
    "pastBar": [
      {"id": document.id, "name": document.name, "subject": document.subject, "year": document.year, "qCount": len(document.questions), "extracting": document.extracting, "uploadedAt": document.uploaded_at}
      for document in knowledge.past_bar
    ],
    "contentTopics": services.content.topic_count,
    "genState": {"running": state.running, "done": state.done, "total": state.total, "current": state.current, "finishedAt": state.finished_at},
    "customRefs": len(knowledge.references_for("custom")),
    "customPastBar": len(custom_past_bar),
    "customQuestions": sum(len(document.questions) for document in custom_past_bar),
  }


@router.get("/storage-info")
async def storage_info(services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Where the knowledge base lives and whether it survives a redeploy."""
  settings = services.settings
  info: dict[str, Any] = {"persistent": settings.persistent_storage or settings.db_dsn is not None, "backend": "sql" if settings.db_dsn else "file", "storageDir": str(settings.storage_path)}
  size_of = getattr(services.store, "size_of", None)
  if size_of is not None:
    info["files"] = {f"{key}.json": {"exists": size_of(key) > 0, "bytes": size_of(key)} for key in (KB_KEY, CONTENT_KEY)}
  return info
