import logging

from fastapi import APIRouter, Depends, HTTPException, status

from barbuddy.api.deps import get_services
from barbuddy.api.models import JobStatusResponse
from barbuddy.services.container import ServiceContainer

router = APIRouter()
logger = logging.getLogger("barbuddy.api.routes.jobs")


@router.get("/{job_id}", response_model=JobStatusResponse, response_model_by_alias=True)
async def get_job_status(job_id: str, services: ServiceContainer = Depends(get_services)) -> JobStatusResponse:  # noqa: B008
  """Poll a background job; finished jobs are forgotten after the retention window."""
  view = services.jobs.get_status(job_id)
  if view is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found or expired")
  return JobStatusResponse.model_validate(view)
