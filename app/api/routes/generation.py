from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_group_runner, require_task_secret
from app.api.models import GenerateNextRequest, GenerateNextResponse, GroupStatusResponse, PathGenerationStatusResponse
from app.jobs.group_runner import GroupRunner

router = APIRouter(dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.get("/groups/{group_id}/status", response_model=GroupStatusResponse)
async def group_status(group_id: str, runner: Annotated[GroupRunner, Depends(get_group_runner)]) -> GroupStatusResponse:
  return GroupStatusResponse.from_status(await runner.get_group_status(group_id))


@router.post("/groups/{group_id}/generate-next", response_model=GenerateNextResponse)
async def generate_next(
  group_id: str, runner: Annotated[GroupRunner, Depends(get_group_runner)], payload: GenerateNextRequest | None = None
) -> GenerateNextResponse:
  """Generate one more scenario for the group; callers poll this until it reports idle."""
  payload = payload or GenerateNextRequest()
  if not runner.has_generator:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Content generator is not configured.")

  reset_count = 0
  if payload.reset_failed:
    reset_count = await runner.reset_failed_targets(group_id)

  result = await runner.generate_next(group_id)
  if not result.success and result.target_id is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error or "Group not found")
  return GenerateNextResponse.build(result, await runner.get_group_status(group_id), reset_count=reset_count)


@router.get("/paths/{path_id}/generation-status", response_model=PathGenerationStatusResponse)
async def path_generation_status(path_id: str, runner: Annotated[GroupRunner, Depends(get_group_runner)]) -> PathGenerationStatusResponse:
  return PathGenerationStatusResponse.from_status(await runner.get_path_status(path_id))
