import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from barbuddy.api.deps import get_services
from barbuddy.api.models import EvaluateRequest, MockBarRequest
from barbuddy.generation.evaluation import EvaluationRequest
from barbuddy.generation.mockbar import result_payload
from barbuddy.services.container import ServiceContainer

router = APIRouter()
logger = logging.getLogger("barbuddy.api.routes.exam")


@router.post("/mockbar/generate")
async def generate_mock_bar(request: MockBarRequest, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Assemble a mock bar exam of the requested size."""
  logger.info("Mock bar requested: %d question(s), subjects=%s", request.count, request.subjects)
  result = await services.assembler.generate(request.subjects, request.count, request.to_options())
  return result_payload(result)


@router.post("/evaluate")
async def evaluate_answer(request: EvaluateRequest, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Grade an answer with the rubric matching the question's format."""
  evaluation = EvaluationRequest(question=request.question, answer=request.answer, model_answer=request.model_answer or "", key_points=tuple(request.key_points or ()), subject=request.subject)
  result = await services.evaluator.evaluate(evaluation)
  if result is None:
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Evaluation could not be produced; please retry.")
  return result
