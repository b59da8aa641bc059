from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from litreview import __version__
from litreview.api.routes import admin, credits, jobs, projects
from litreview.config import get_settings
from litreview.core.exceptions import global_exception_handler, http_exception_handler, job_error_handler, request_validation_exception_handler
from litreview.core.lifespan import lifespan
from litreview.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from litreview.jobs.errors import JobError

settings = get_settings()

app = FastAPI(title="litreview-engine", version=__version__, lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

if settings.allowed_origins:
  app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["content-type", "authorization", "x-user-id", "x-request-id"],
    expose_headers=["content-length", "x-request-id"],
  )


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(JobError, job_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(projects.router, prefix="/v1/projects", tags=["projects"])
app.include_router(credits.router, prefix="/v1/credits", tags=["credits"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
