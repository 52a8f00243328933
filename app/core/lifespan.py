import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.core.database import dispose_engine
from app.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging after uvicorn starts and release DB connections on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - storage_backend=%s pg_dsn=%s", settings.storage_backend, _redact_dsn(settings.pg_dsn))
  except RuntimeError:
    # Keep serving with uvicorn's default handlers when the log dir is unusable.
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  if not settings.task_secret:
    logger.warning("PATHGEN_TASK_SECRET is not set; internal pipeline endpoints will reject every call.")
  if not settings.openrouter_api_key:
    logger.warning("OPENROUTER_API_KEY is not set; only stats and dry runs are available.")

  yield

  await dispose_engine()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{parsed.username}@{host}{port}" if parsed.username else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
