import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, PlainTextResponse

from barbuddy.api.deps import get_services
from barbuddy.api.models import DocumentCreatedResponse, ManualPastBarRequest, PastBarStatusResponse, PastBarUploadRequest, ReferenceUploadRequest, SyllabusUploadRequest
from barbuddy.generation.documents import SyllabusParseError
from barbuddy.generation.export import all_documents_text, document_json, document_text, export_filename
from barbuddy.schema.knowledge import PastBarDocument, PastBarQuestion
from barbuddy.services.container import ServiceContainer
from barbuddy.utils.ids import generate_document_id

router = APIRouter()
logger = logging.getLogger("barbuddy.api.routes.knowledge")


@router.post("/admin/syllabus")
async def upload_syllabus(request: SyllabusUploadRequest, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Parse and store a syllabus, then start pre-generation in the background."""
  try:
    upload = services.documents.upload_syllabus(request.content, request.name)
  except SyllabusParseError as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
  return upload.summary()


@router.delete("/admin/syllabus")
async def delete_syllabus(services: ServiceContainer = Depends(get_services)) -> dict[str, bool]:  # noqa: B008
  """Drop the syllabus together with all generated content."""
  services.knowledge.syllabus = None
  services.content.clear()
  services.knowledge.persist()
  services.content.persist()
  return {"success": True}


@router.post("/admin/reference", response_model=DocumentCreatedResponse, response_model_by_alias=True)
async def upload_reference(request: ReferenceUploadRequest, services: ServiceContainer = Depends(get_services)) -> DocumentCreatedResponse:  # noqa: B008
  """Store a reference now and queue its summary."""
  reference, job_id = services.documents.add_reference(request.content, request.name, request.subject, request.type)
  return DocumentCreatedResponse(id=reference.id, name=reference.name, job_id=job_id)


@router.delete("/admin/reference/{document_id}")
async def delete_document(document_id: str, services: ServiceContainer = Depends(get_services)) -> dict[str, bool]:  # noqa: B008
  """Remove a reference or past bar document by id."""
  services.knowledge.remove_document(document_id)
  services.knowledge.persist()
  return {"success": True}


@router.post("/admin/pastbar", response_model=DocumentCreatedResponse, response_model_by_alias=True)
async def upload_past_bar(request: PastBarUploadRequest, services: ServiceContainer = Depends(get_services)) -> DocumentCreatedResponse:  # noqa: B008
  """Store a past bar document now and queue question extraction."""
  document, job_id = services.documents.add_past_bar(request.content, request.name, request.subject, request.year)
  return DocumentCreatedResponse(id=document.id, name=document.name, job_id=job_id)


@router.post("/admin/pastbar/manual")
async def add_manual_past_bar(request: ManualPastBarRequest, services: ServiceContainer = Depends(get_services)) -> dict[str, Any]:  # noqa: B008
  """Add typed-in past bar questions without running extraction."""
  questions = [PastBarQuestion(q=item.q, context=item.context, model_answer=item.model_answer, key_points=item.key_points, type=item.type) for item in request.questions if item.q.strip()]
  document = PastBarDocument(id=generate_document_id("pb"), name=request.name, subject=request.subject or "general", year=request.year or "Unknown", questions=questions)
  services.knowledge.past_bar.append(document)
  services.knowledge.persist()
  return {"success": True, "id": document.id, "name": document.name, "questionsAdded": len(questions)}


@router.get("/admin/pastbar/{document_id}/status", response_model=PastBarStatusResponse, response_model_by_alias=True)
async def past_bar_status(document_id: str, services: ServiceContainer = Depends(get_services)) -> PastBarStatusResponse:  # noqa: B008
  document = services.knowledge.find_past_bar(document_id)
  if document is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
  return PastBarStatusResponse(extracting=document.extracting, questions_extracted=len(document.questions), extract_error=document.extract_error)


@router.get("/admin/pastbar/download-all")
async def download_all_past_bar(services: ServiceContainer = Depends(get_services)) -> PlainTextResponse:  # noqa: B008
  """Every past bar document's questions as one text file."""
  if not services.knowledge.past_bar:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No past bar questions in KB")
  headers = {"Content-Disposition": 'attachment; filename="barbuddy-all-questions.txt"'}
  return PlainTextResponse(all_documents_text(services.knowledge.past_bar), headers=headers)


@router.get("/admin/pastbar/{document_id}/download", response_model=None)
async def download_past_bar(document_id: str, export_format: Literal["json", "txt"] = Query("json", alias="format"), services: ServiceContainer = Depends(get_services)) -> JSONResponse | PlainTextResponse:  # noqa: B008
  """One past bar document as a JSON or text attachment."""
  document = services.knowledge.find_past_bar(document_id)
  if document is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
  headers = {"Content-Disposition": f'attachment; filename="{export_filename(document, export_format)}"'}
  if export_format == "txt":
    return PlainTextResponse(document_text(document), headers=headers)
  return JSONResponse(document_json(document), headers=headers)
