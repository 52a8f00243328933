"""Storage interface for scenario generation queue jobs."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from app.jobs.models import EnqueueItem, GenerationJob, JobStatus, QueueStats


class GenerationJobsRepository(Protocol):
  """Repository contract for queue job persistence.

  Every transition is a single-row write. ``mark_processing`` is the only
  conditional one: it claims a job only while it is still pending with the
  retry count the caller saw, so two processors cannot both take it.
  """

  async def enqueue(self, path_id: str, items: Sequence[EnqueueItem]) -> list[GenerationJob]:
    """Insert one pending job per item."""

  async def get_job(self, job_id: str) -> GenerationJob | None:
    """Fetch a job by identifier."""

  async def due_jobs(self, limit: int, now: datetime) -> list[GenerationJob]:
    """Return pending jobs with target_date <= now, oldest target_date first."""

  async def mark_processing(self, job_id: str, *, expected_retry_count: int, now: datetime) -> GenerationJob | None:
    """Claim a pending job; returns None when another worker got there first."""

  async def mark_ready(self, job_id: str) -> None:
    """Terminal success; clears last_error."""

  async def mark_failed(self, job_id: str, error: str) -> None:
    """Terminal failure with the last error recorded."""

  async def reset_for_retry(self, job_id: str, error: str) -> None:
    """Return a failed attempt to pending, keeping target_date so it is due again."""

  async def requeue(self, job_id: str) -> GenerationJob | None:
    """Return a failed job to pending with a fresh retry budget. None unless the job exists and is failed."""

  async def jobs_for_path(self, path_id: str, status: JobStatus | None = None) -> list[GenerationJob]:
    """Jobs of a path ordered by day_index."""

  async def failed_jobs(self, limit: int = 50) -> list[GenerationJob]:
    """Most recently updated terminal failures."""

  async def stale_processing_jobs(self, cutoff: datetime) -> list[GenerationJob]:
    """Jobs stuck in processing since before the cutoff."""

  async def stats(self) -> QueueStats:
    """Counts per status."""

  async def delete_jobs_for_path(self, path_id: str) -> int:
    """Remove every job of a path."""

  async def delete_terminal_before(self, cutoff: datetime) -> int:
    """Remove ready/failed jobs last updated before the cutoff."""
