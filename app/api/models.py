from __future__ import annotations

from dataclasses import asdict
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.jobs.models import BatchResult, GenerateNextResult, GroupStatus, JobStatus, PathGenerationStatus, QueueStats, TargetStatus


class ProcessQueueRequest(BaseModel):
  """Trigger payload for a queue run. A missing limit uses the configured default."""

  model_config = ConfigDict(extra="forbid")

  limit: int | None = Field(default=None, ge=1)
  dry_run: bool = False


class QueueStatsResponse(BaseModel):
  pending: int
  processing: int
  ready: int
  failed: int
  total: int

  @classmethod
  def from_stats(cls, stats: QueueStats) -> QueueStatsResponse:
    return cls(**asdict(stats))


class JobErrorResponse(BaseModel):
  job_id: str
  error: str
  terminal: bool


class ProcessQueueResponse(BaseModel):
  processed: int
  succeeded: int
  failed: int
  skipped: int
  errors: list[JobErrorResponse]
  dry_run: bool
  limit: int
  duration_ms: int
  stats_before: QueueStatsResponse
  stats_after: QueueStatsResponse

  @classmethod
  def build(cls, result: BatchResult, *, dry_run: bool, limit: int, duration_ms: int, before: QueueStats, after: QueueStats) -> ProcessQueueResponse:
    return cls(
      processed=result.processed,
      succeeded=result.succeeded,
      failed=result.failed,
      skipped=result.skipped,
      errors=[JobErrorResponse(job_id=error.job_id, error=error.error, terminal=error.terminal) for error in result.errors],
      dry_run=dry_run,
      limit=limit,
      duration_ms=duration_ms,
      stats_before=QueueStatsResponse.from_stats(before),
      stats_after=QueueStatsResponse.from_stats(after),
    )


class GenerationJobResponse(BaseModel):
  job_id: str
  path_id: str
  day_index: int
  status: JobStatus
  target_date: datetime
  retry_count: int
  last_error: str | None = None


class TargetStatusResponse(BaseModel):
  target_id: str
  title: str
  content_id: str | None
  status: TargetStatus
  retry_count: int
  last_error: str | None
  exhausted: bool


class GroupStatusResponse(BaseModel):
  group_id: str
  week_number: int
  theme: str
  ready_count: int
  pending_count: int
  generating_count: int
  failed_count: int
  exhausted_count: int
  total_count: int
  is_complete: bool
  has_failures: bool
  targets: list[TargetStatusResponse]

  @classmethod
  def from_status(cls, status: GroupStatus) -> GroupStatusResponse:
    return cls.model_validate(asdict(status))


class PathGenerationStatusResponse(BaseModel):
  path_id: str
  groups: list[GroupStatusResponse]
  total_ready: int
  total_pending: int
  total_generating: int
  total_failed: int
  is_complete: bool
  needs_generation: bool

  @classmethod
  def from_status(cls, status: PathGenerationStatus) -> PathGenerationStatusResponse:
    return cls.model_validate(asdict(status))


class GenerateNextRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  reset_failed: bool = False


class GenerateNextResponse(BaseModel):
  success: bool
  target_id: str | None = None
  content_id: str | None = None
  error: str | None = None
  should_retry: bool = False
  idle: bool = False
  reset_count: int = 0
  status: GroupStatusResponse

  @classmethod
  def build(cls, result: GenerateNextResult, status: GroupStatus, *, reset_count: int = 0) -> GenerateNextResponse:
    return cls(
      success=result.success,
      target_id=result.target_id,
      content_id=result.content_id,
      error=result.error,
      should_retry=result.should_retry,
      idle=result.is_idle,
      reset_count=reset_count,
      status=GroupStatusResponse.from_status(status),
    )
