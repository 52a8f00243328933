"""Postgres-backed repository for scenario generation queue jobs using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.jobs.models import JOB_STATUSES, TERMINAL_JOB_STATUSES, EnqueueItem, GenerationJob, JobStatus, QueueStats
from app.schema.generation import GenerationQueueJob
from app.utils.db_retry import execute_with_retry
from app.utils.ids import generate_job_id


def _row_to_job(row: GenerationQueueJob) -> GenerationJob:
  return GenerationJob(
    job_id=row.job_id,
    path_id=row.path_id,
    day_index=row.day_index,
    status=row.status,  # type: ignore[arg-type]
    target_date=row.target_date,
    retry_count=row.retry_count,
    last_error=row.last_error,
    last_processed_at=row.last_processed_at,
    created_at=row.created_at,
    updated_at=row.updated_at,
  )


class PostgresJobsRepository:
  """Persist queue jobs to Postgres; every transition is one UPDATE statement."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def _update(self, operation_name: str, job_id: str, *, expected_status: JobStatus | None = None, **values: object) -> GenerationJob | None:
    async def _run() -> GenerationJob | None:
      async with self._session_factory() as session:
        stmt = update(GenerationQueueJob).where(GenerationQueueJob.job_id == job_id)
        if expected_status is not None:
          stmt = stmt.where(GenerationQueueJob.status == expected_status)
        stmt = stmt.values(updated_at=func.now(), **values).returning(GenerationQueueJob)
        row = (await session.execute(stmt)).scalar_one_or_none()
        job = _row_to_job(row) if row is not None else None
        await session.commit()
        return job

    return await execute_with_retry(operation_name=operation_name, func=_run)

  async def enqueue(self, path_id: str, items: Sequence[EnqueueItem]) -> list[GenerationJob]:
    async def _run() -> list[GenerationJob]:
      async with self._session_factory() as session:
        rows = [GenerationQueueJob(job_id=generate_job_id(), path_id=path_id, day_index=item.day_index, status="pending", target_date=item.target_date, retry_count=0) for item in items]
        session.add_all(rows)
        await session.flush()
        for row in rows:
          await session.refresh(row)
        jobs = [_row_to_job(row) for row in rows]
        await session.commit()
        return jobs

    if not items:
      return []
    return await execute_with_retry(operation_name="queue_enqueue", func=_run)

  async def get_job(self, job_id: str) -> GenerationJob | None:
    async def _run() -> GenerationJob | None:
      async with self._session_factory() as session:
        row = await session.get(GenerationQueueJob, job_id)
        return _row_to_job(row) if row is not None else None

    return await execute_with_retry(operation_name="queue_get_job", func=_run)

  async def _select(self, operation_name: str, stmt) -> list[GenerationJob]:  # type: ignore[no-untyped-def]
    async def _run() -> list[GenerationJob]:
      async with self._session_factory() as session:
        rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_job(row) for row in rows]

    return await execute_with_retry(operation_name=operation_name, func=_run)

  async def due_jobs(self, limit: int, now: datetime) -> list[GenerationJob]:
    stmt = select(GenerationQueueJob).where(GenerationQueueJob.status == "pending", GenerationQueueJob.target_date <= now).order_by(GenerationQueueJob.target_date.asc()).limit(limit)
    return await self._select("queue_due_jobs", stmt)

  async def mark_processing(self, job_id: str, *, expected_retry_count: int, now: datetime) -> GenerationJob | None:
    async def _run() -> GenerationJob | None:
      async with self._session_factory() as session:
        # Conditional claim: a concurrent worker that already moved the job makes this a no-op.
        stmt = (
          update(GenerationQueueJob)
          .where(GenerationQueueJob.job_id == job_id, GenerationQueueJob.status == "pending", GenerationQueueJob.retry_count == expected_retry_count)
          .values(
            status="processing",
            last_processed_at=now,
            retry_count=case((GenerationQueueJob.last_error.is_not(None), GenerationQueueJob.retry_count + 1), else_=GenerationQueueJob.retry_count),
            updated_at=func.now(),
          )
          .returning(GenerationQueueJob)
        )
        row = (await session.execute(stmt)).scalar_one_or_none()
        job = _row_to_job(row) if row is not None else None
        await session.commit()
        return job

    return await execute_with_retry(operation_name="queue_mark_processing", func=_run)

  async def mark_ready(self, job_id: str) -> None:
    await self._update("queue_mark_ready", job_id, status="ready", last_error=None)

  async def mark_failed(self, job_id: str, error: str) -> None:
    await self._update("queue_mark_failed", job_id, status="failed", last_error=error)

  async def reset_for_retry(self, job_id: str, error: str) -> None:
    await self._update("queue_reset_for_retry", job_id, status="pending", last_error=error)

  async def requeue(self, job_id: str) -> GenerationJob | None:
    return await self._update("queue_requeue", job_id, expected_status="failed", status="pending", retry_count=0, last_error=None, last_processed_at=None)

  async def jobs_for_path(self, path_id: str, status: JobStatus | None = None) -> list[GenerationJob]:
    stmt = select(GenerationQueueJob).where(GenerationQueueJob.path_id == path_id)
    if status is not None:
      stmt = stmt.where(GenerationQueueJob.status == status)
    return await self._select("queue_jobs_for_path", stmt.order_by(GenerationQueueJob.day_index.asc()))

  async def failed_jobs(self, limit: int = 50) -> list[GenerationJob]:
    stmt = select(GenerationQueueJob).where(GenerationQueueJob.status == "failed").order_by(GenerationQueueJob.updated_at.desc()).limit(limit)
    return await self._select("queue_failed_jobs", stmt)

  async def stale_processing_jobs(self, cutoff: datetime) -> list[GenerationJob]:
    stmt = select(GenerationQueueJob).where(GenerationQueueJob.status == "processing", (GenerationQueueJob.last_processed_at.is_(None)) | (GenerationQueueJob.last_processed_at < cutoff))
    return await self._select("queue_stale_processing_jobs", stmt)

  async def stats(self) -> QueueStats:
    async def _run() -> QueueStats:
      async with self._session_factory() as session:
        stmt = select(GenerationQueueJob.status, func.count()).group_by(GenerationQueueJob.status)
        counts = dict.fromkeys(JOB_STATUSES, 0)
        for status, count in (await session.execute(stmt)).all():
          if status in counts:
            counts[status] = int(count)
        return QueueStats(**counts, total=sum(counts.values()))

    return await execute_with_retry(operation_name="queue_stats", func=_run)

  async def _delete(self, operation_name: str, stmt) -> int:  # type: ignore[no-untyped-def]
    async def _run() -> int:
      async with self._session_factory() as session:
        result = await session.execute(stmt)
        await session.commit()
        return int(result.rowcount or 0)

    return await execute_with_retry(operation_name=operation_name, func=_run)

  async def delete_jobs_for_path(self, path_id: str) -> int:
    return await self._delete("queue_delete_jobs_for_path", delete(GenerationQueueJob).where(GenerationQueueJob.path_id == path_id))

  async def delete_terminal_before(self, cutoff: datetime) -> int:
    stmt = delete(GenerationQueueJob).where(GenerationQueueJob.status.in_(TERMINAL_JOB_STATUSES), GenerationQueueJob.updated_at < cutoff)
    return await self._delete("queue_delete_terminal_before", stmt)
