import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from barbuddy.ai.providers.base import ChatTurn
from barbuddy.api.deps import get_services
from barbuddy.api.models import GenerateContentRequest
from barbuddy.generation.progress import ProgressEvent, QueueListener
from barbuddy.services.container import ServiceContainer

router = APIRouter()
logger = logging.getLogger("barbuddy.api.routes.generation")

KEEPALIVE_SECONDS = 15.0


def format_sse(event: ProgressEvent) -> str:
  return f"data: {json.dumps(event.as_dict())}\n\n"


@router.post("/admin/generate")
async def start_generation(services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Start a full pre-generation run, or report the one already in progress."""
  syllabus = services.knowledge.syllabus
  if syllabus is None:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No syllabus")
  state = services.generation
  if state.running:
    return {"message": "Already running", "done": state.done, "total": state.total}
  started = services.engine.trigger()
  return {"message": "Started" if started else "Nothing to generate", "total": state.total if started else 0}


@router.get("/gen/progress")
async def stream_progress(request: Request, services: ServiceContainer = Depends(get_services)) -> StreamingResponse:  # noqa: B008
  """Server-sent events: the current snapshot first, then every published change."""
  listener = QueueListener()
  unsubscribe = services.broadcaster.subscribe(listener)

  async def events() -> AsyncIterator[str]:
    try:
      yield format_sse(services.engine.progress())
      while not await request.is_disconnected():
        try:
          event = await asyncio.wait_for(listener.queue.get(), timeout=KEEPALIVE_SECONDS)
        except TimeoutError:
          yield ": keep-alive\n\n"
          continue
        yield format_sse(event)
    finally:
      unsubscribe()

  return StreamingResponse(events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"})


@router.post("/generate-content")
async def generate_content(request: GenerateContentRequest, services: ServiceContainer = Depends(get_services)) -> dict[str, str]:  # noqa: B008
  """Forward caller-built turns to the model; provider errors map to 502/503."""
  turns = [ChatTurn(role=message.role, content=message.content) for message in request.messages]
  text = await services.invoker.invoke(turns, request.max_tokens, system=request.system)
  return {"content": text}
