"""Batch processor for the per-day scenario generation queue."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from app.ai.generator import ContentGenerator, GeneratedContent, GenerationRequest
from app.config import QueuePolicy
from app.core.exceptions import JobStateError, NotFoundError
from app.jobs.briefs import build_day_brief, map_cefr_to_difficulty
from app.jobs.models import BatchResult, EnqueueItem, GenerationJob, JobError, LearningPath, PathDay, QueueStats, ScenarioRecord
from app.jobs.retry import describe_error, guarded_generation, is_fatal, job_should_retry
from app.storage.jobs_repo import GenerationJobsRepository
from app.storage.paths_repo import PathsRepository, ScenariosRepository
from app.utils.ids import generate_scenario_id

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_ABANDONED_ERROR = "Processing attempt abandoned"


def _utc_now() -> datetime:
  return datetime.now(UTC)


class QueueProcessor:
  """Process due generation jobs one at a time with bounded retries."""

  def __init__(
    self,
    *,
    jobs_repo: GenerationJobsRepository,
    paths_repo: PathsRepository,
    scenarios_repo: ScenariosRepository,
    generator: ContentGenerator | None,
    policy: QueuePolicy | None = None,
    clock: Clock = _utc_now,
  ) -> None:
    self._jobs = jobs_repo
    self._paths = paths_repo
    self._scenarios = scenarios_repo
    self._generator = generator
    self._policy = policy or QueuePolicy()
    self._clock = clock

  @property
  def has_generator(self) -> bool:
    return self._generator is not None

  async def enqueue_path(self, path_id: str, day_indexes: Sequence[int], *, start_at: datetime | None = None, interval: timedelta = timedelta(days=1)) -> list[GenerationJob]:
    """Queue one job per day, the first due at start_at and the rest staggered by interval."""
    if not day_indexes:
      return []
    start = start_at or self._clock()
    first = min(day_indexes)
    items = [EnqueueItem(day_index=day_index, target_date=start + (day_index - first) * interval) for day_index in sorted(day_indexes)]
    jobs = await self._jobs.enqueue(path_id, items)
    logger.info("Queued %d generation jobs for path %s", len(jobs), path_id)
    return jobs

  async def process_pending(self, limit: int = 10, *, dry_run: bool = False) -> BatchResult:
    """Process up to ``limit`` due jobs sequentially.

    Every fetched job counts as processed and ends in exactly one of
    succeeded, skipped or failed. Job errors never abort the batch; store
    failures do.
    """
    if not dry_run and self._generator is None:
      raise RuntimeError("Content generator is not configured.")

    result = BatchResult()
    jobs = await self._jobs.due_jobs(limit, self._clock())
    logger.info("Processing %d due generation jobs limit=%d dry_run=%s", len(jobs), limit, dry_run)

    for job in jobs:
      result.processed += 1

      # The fetch and this job may be far apart in a slow batch.
      if job.target_date > self._clock():
        logger.debug("Skipping job %s; due at %s", job.job_id, job.target_date.isoformat())
        result.skipped += 1
        continue

      if dry_run:
        logger.info("[dry-run] Would process job %s path=%s day=%d", job.job_id, job.path_id, job.day_index)
        result.succeeded += 1
        continue

      try:
        claimed = await self.process_job(job)
      except Exception as exc:
        if is_fatal(exc):
          raise
        error = describe_error(exc)
        terminal = await self._record_failure(job, error)
        result.failed += 1
        result.errors.append(JobError(job_id=job.job_id, error=error, terminal=terminal))
        continue

      if claimed:
        result.succeeded += 1
      else:
        logger.info("Job %s was claimed by another worker; skipping", job.job_id)
        result.skipped += 1

    logger.info("Queue run complete processed=%d succeeded=%d failed=%d skipped=%d", result.processed, result.succeeded, result.failed, result.skipped)
    return result

  async def process_job(self, job: GenerationJob) -> bool:
    """Generate and link the scenario for one job. Returns False if the claim was lost."""
    claimed = await self._jobs.mark_processing(job.job_id, expected_retry_count=job.retry_count, now=self._clock())
    if claimed is None:
      return False
    # Keep the in-flight retry count for the failure decision.
    job.retry_count = claimed.retry_count

    path = await self._paths.get_path(job.path_id)
    if path is None:
      raise NotFoundError(f"Learning path {job.path_id} not found")
    day = path.find_day(job.day_index)
    if day is None:
      raise NotFoundError(f"Day {job.day_index} not found in path {job.path_id} schedule")

    if day.scenario_id:
      logger.info("Day %d of path %s already has scenario %s; marking job %s ready", day.day_index, path.path_id, day.scenario_id, job.job_id)
      await self._jobs.mark_ready(job.job_id)
      return True

    request = GenerationRequest(brief=build_day_brief(day, path), mode="tutor", language_hint=path.target_language)
    content = await guarded_generation(self._generator.generate(request), self._policy.generation_timeout_seconds)

    scenario = self._build_scenario(content, day, path)
    await self._scenarios.create_scenario(scenario)
    await self._paths.link_day_scenario(path.path_id, day.day_index, scenario.scenario_id)
    # The first generated day makes a draft path usable.
    if day.day_index == 1 and path.status == "draft":
      await self._paths.set_path_status(path.path_id, "active")
      logger.info("Activated learning path %s", path.path_id)

    await self._jobs.mark_ready(job.job_id)
    logger.info("Job %s ready with scenario %s", job.job_id, scenario.scenario_id)
    return True

  async def _record_failure(self, job: GenerationJob, error: str) -> bool:
    if job_should_retry(job.retry_count, self._policy.max_retries):
      await self._jobs.reset_for_retry(job.job_id, error)
      logger.warning("Job %s failed (attempt %d/%d), will retry: %s", job.job_id, job.retry_count + 1, self._policy.max_retries, error)
      return False
    await self._jobs.mark_failed(job.job_id, error)
    logger.error("Job %s failed after %d attempts: %s", job.job_id, job.retry_count + 1, error)
    return True

  def _build_scenario(self, content: GeneratedContent, day: PathDay, path: LearningPath) -> ScenarioRecord:
    return ScenarioRecord(
      scenario_id=generate_scenario_id(),
      title=content.title,
      description=content.description,
      difficulty=content.difficulty or map_cefr_to_difficulty(day.difficulty),
      cefr_level=content.cefr_level or day.difficulty,
      created_by_user_id=path.user_id,
      learning_objectives=content.learning_objectives or list(day.learning_objectives),
      tags=[f"day:{day.day_index}", f"path:{path.path_id}"],
      content=content.model_dump(by_alias=True, exclude_none=True),
      created_at=self._clock(),
    )

  async def get_queue_stats(self) -> QueueStats:
    return await self._jobs.stats()

  async def cleanup_old_jobs(self, older_than_days: int = 30) -> int:
    """Delete ready and failed jobs untouched for ``older_than_days``."""
    if older_than_days <= 0:
      raise ValueError("older_than_days must be a positive integer.")
    cutoff = self._clock() - timedelta(days=older_than_days)
    deleted = await self._jobs.delete_terminal_before(cutoff)
    logger.info("Deleted %d terminal jobs older than %s", deleted, cutoff.isoformat())
    return deleted

  async def requeue_failed(self, job_id: str) -> GenerationJob:
    job = await self._jobs.requeue(job_id)
    if job is None:
      existing = await self._jobs.get_job(job_id)
      if existing is None:
        raise NotFoundError(f"Generation job {job_id} not found")
      raise JobStateError(f"Generation job {job_id} is {existing.status}; only failed jobs can be requeued")
    logger.info("Requeued job %s", job_id)
    return job

  async def recover_stale_jobs(self) -> int:
    """Treat jobs stuck in processing as failed attempts so they re-enter the queue or fail."""
    cutoff = self._clock() - timedelta(seconds=self._policy.stale_processing_seconds)
    stale = await self._jobs.stale_processing_jobs(cutoff)
    for job in stale:
      await self._record_failure(job, _ABANDONED_ERROR)
    if stale:
      logger.warning("Recovered %d stale processing jobs", len(stale))
    return len(stale)
