"""Shared FastAPI dependencies for task authentication and pipeline wiring."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from app.ai.generator import ContentGenerator, build_content_generator
from app.config import Settings, get_settings
from app.jobs.group_runner import GroupRunner
from app.jobs.queue_processor import QueueProcessor
from app.storage.factory import Repositories, build_repositories

logger = logging.getLogger(__name__)


def require_task_secret(
  settings: Annotated[Settings, Depends(get_settings)], authorization: Annotated[str | None, Header()] = None, x_pathgen_task_secret: Annotated[str | None, Header()] = None
) -> None:
  """Reject trigger calls that do not carry the shared task secret."""
  # Secure-by-default: without a configured secret the internal endpoints stay closed.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest(x_pathgen_task_secret or "", settings.task_secret)
  bearer_valid = secrets.compare_digest(authorization or "", f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to internal pipeline endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


def get_repositories(settings: Annotated[Settings, Depends(get_settings)]) -> Repositories:
  return build_repositories(settings)


def get_content_generator(settings: Annotated[Settings, Depends(get_settings)]) -> ContentGenerator | None:
  """Production generator, or None when no API key is set (stats and dry runs still work)."""
  if not settings.openrouter_api_key:
    return None
  return build_content_generator(settings)


def get_queue_processor(
  settings: Annotated[Settings, Depends(get_settings)], repos: Annotated[Repositories, Depends(get_repositories)], generator: Annotated[ContentGenerator | None, Depends(get_content_generator)]
) -> QueueProcessor:
  return QueueProcessor(jobs_repo=repos.jobs, paths_repo=repos.paths, scenarios_repo=repos.scenarios, generator=generator, policy=settings.policy)


def get_group_runner(
  settings: Annotated[Settings, Depends(get_settings)], repos: Annotated[Repositories, Depends(get_repositories)], generator: Annotated[ContentGenerator | None, Depends(get_content_generator)]
) -> GroupRunner:
  return GroupRunner(groups_repo=repos.groups, scenarios_repo=repos.scenarios, generator=generator, policy=settings.policy)
