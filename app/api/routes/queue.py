from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_queue_processor, require_task_secret
from app.api.models import GenerationJobResponse, ProcessQueueRequest, ProcessQueueResponse, QueueStatsResponse
from app.config import Settings, get_settings
from app.jobs.queue_processor import QueueProcessor

router = APIRouter(prefix="/queue", dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/process", response_model=ProcessQueueResponse)
async def process_queue(
  settings: Annotated[Settings, Depends(get_settings)], processor: Annotated[QueueProcessor, Depends(get_queue_processor)], payload: ProcessQueueRequest | None = None
) -> ProcessQueueResponse:
  """Run one batch of due generation jobs.

  Called by the scheduler. The limit is capped at the configured maximum so a
  single trigger cannot hold the generator for too long.
  """
  payload = payload or ProcessQueueRequest()
  limit = min(payload.limit or settings.queue_default_limit, settings.queue_max_limit)
  if not payload.dry_run and not processor.has_generator:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Content generator is not configured.")

  started = time.perf_counter()
  before = await processor.get_queue_stats()
  result = await processor.process_pending(limit, dry_run=payload.dry_run)
  after = await processor.get_queue_stats()
  duration_ms = int((time.perf_counter() - started) * 1000)
  logger.info("Queue trigger finished limit=%d dry_run=%s duration_ms=%d", limit, payload.dry_run, duration_ms)
  return ProcessQueueResponse.build(result, dry_run=payload.dry_run, limit=limit, duration_ms=duration_ms, before=before, after=after)


@router.get("/stats", response_model=QueueStatsResponse)
async def queue_stats(processor: Annotated[QueueProcessor, Depends(get_queue_processor)]) -> QueueStatsResponse:
  return QueueStatsResponse.from_stats(await processor.get_queue_stats())


@router.post("/cleanup")
async def cleanup_queue(
  settings: Annotated[Settings, Depends(get_settings)], processor: Annotated[QueueProcessor, Depends(get_queue_processor)], older_than_days: Annotated[int | None, Query(ge=1)] = None
) -> dict[str, int]:
  deleted = await processor.cleanup_old_jobs(older_than_days or settings.cleanup_after_days)
  return {"deleted": deleted}


@router.post("/recover-stale")
async def recover_stale(processor: Annotated[QueueProcessor, Depends(get_queue_processor)]) -> dict[str, int]:
  return {"recovered": await processor.recover_stale_jobs()}


@router.post("/jobs/{job_id}/requeue", response_model=GenerationJobResponse)
async def requeue_job(job_id: str, processor: Annotated[QueueProcessor, Depends(get_queue_processor)]) -> GenerationJobResponse:
  job = await processor.requeue_failed(job_id)
  return GenerationJobResponse.model_validate(asdict(job))
