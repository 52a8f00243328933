from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from app.api.routes import generation, queue
from app.core.exceptions import (
  JobStateError,
  NotFoundError,
  PersistenceError,
  global_exception_handler,
  http_exception_handler,
  job_state_exception_handler,
  not_found_exception_handler,
  persistence_exception_handler,
  request_validation_exception_handler,
)
from app.core.lifespan import lifespan

app = FastAPI(title="pathgen-engine", lifespan=lifespan, docs_url=None, redoc_url=None)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(NotFoundError, not_found_exception_handler)
app.add_exception_handler(PersistenceError, persistence_exception_handler)
app.add_exception_handler(JobStateError, job_state_exception_handler)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(queue.router, prefix="/internal", tags=["queue"])
app.include_router(generation.router, prefix="/v1", tags=["generation"])
