from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from barbuddy.ai.errors import ModelInvocationError
from barbuddy.api.routes import content, exam, generation, jobs, knowledge, status
from barbuddy.config import get_settings
from barbuddy.core.exceptions import global_exception_handler, http_exception_handler, model_invocation_exception_handler, request_validation_exception_handler
from barbuddy.core.lifespan import lifespan
from barbuddy.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="BarBuddy Engine", lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(ModelInvocationError, model_invocation_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(status.router, prefix="/api", tags=["status"])
app.include_router(knowledge.router, prefix="/api", tags=["knowledge"])
app.include_router(jobs.router, prefix="/api/job", tags=["jobs"])
app.include_router(generation.router, prefix="/api", tags=["generation"])
app.include_router(content.router, prefix="/api", tags=["content"])
app.include_router(exam.router, prefix="/api", tags=["exam"])
