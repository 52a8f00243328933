"""In-process repositories for local runs and tests."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Sequence
from dataclasses import fields, replace
from datetime import UTC, datetime
from typing import Any

from app.jobs.models import JOB_STATUSES, TERMINAL_JOB_STATUSES, EnqueueItem, GenerationGroup, GenerationJob, GenerationTarget, GroupState, JobStatus, LearningPath, PathStatus, QueueStats, ScenarioRecord
from app.jobs.retry import next_retry_count
from app.utils.ids import generate_job_id

Clock = Callable[[], datetime]

_TARGET_FIELDS = frozenset(item.name for item in fields(GenerationTarget)) - {"target_id"}


def _utc_now() -> datetime:
  return datetime.now(UTC)


class InMemoryJobsRepository:
  """Dictionary-backed queue store with the same transition rules as Postgres."""

  def __init__(self, clock: Clock = _utc_now) -> None:
    self._jobs: dict[str, GenerationJob] = {}
    self._lock = asyncio.Lock()
    self._clock = clock

  def _touch(self, job: GenerationJob, **changes: Any) -> GenerationJob:
    updated = replace(job, updated_at=self._clock(), **changes)
    self._jobs[job.job_id] = updated
    return updated

  async def enqueue(self, path_id: str, items: Sequence[EnqueueItem]) -> list[GenerationJob]:
    async with self._lock:
      now = self._clock()
      created: list[GenerationJob] = []
      for item in items:
        job = GenerationJob(job_id=generate_job_id(), path_id=path_id, day_index=item.day_index, status="pending", target_date=item.target_date, created_at=now, updated_at=now)
        self._jobs[job.job_id] = job
        created.append(copy.deepcopy(job))
      return created

  async def get_job(self, job_id: str) -> GenerationJob | None:
    job = self._jobs.get(job_id)
    return copy.deepcopy(job) if job else None

  async def due_jobs(self, limit: int, now: datetime) -> list[GenerationJob]:
    due = [job for job in self._jobs.values() if job.status == "pending" and job.target_date <= now]
    due.sort(key=lambda job: job.target_date)
    return [copy.deepcopy(job) for job in due[:limit]]

  async def mark_processing(self, job_id: str, *, expected_retry_count: int, now: datetime) -> GenerationJob | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.status != "pending" or job.retry_count != expected_retry_count:
        return None
      retry_count = next_retry_count(job.retry_count, previously_failed=job.last_error is not None)
      return copy.deepcopy(self._touch(job, status="processing", retry_count=retry_count, last_processed_at=now))

  async def mark_ready(self, job_id: str) -> None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is not None:
        self._touch(job, status="ready", last_error=None)

  async def mark_failed(self, job_id: str, error: str) -> None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is not None:
        self._touch(job, status="failed", last_error=error)

  async def reset_for_retry(self, job_id: str, error: str) -> None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is not None:
        self._touch(job, status="pending", last_error=error)

  async def requeue(self, job_id: str) -> GenerationJob | None:
    async with self._lock:
      job = self._jobs.get(job_id)
      if job is None or job.status != "failed":
        return None
      return copy.deepcopy(self._touch(job, status="pending", retry_count=0, last_error=None, last_processed_at=None))

  async def jobs_for_path(self, path_id: str, status: JobStatus | None = None) -> list[GenerationJob]:
    jobs = [job for job in self._jobs.values() if job.path_id == path_id and (status is None or job.status == status)]
    jobs.sort(key=lambda job: job.day_index)
    return [copy.deepcopy(job) for job in jobs]

  async def failed_jobs(self, limit: int = 50) -> list[GenerationJob]:
    failed = [job for job in self._jobs.values() if job.status == "failed"]
    failed.sort(key=lambda job: job.updated_at or job.target_date, reverse=True)
    return [copy.deepcopy(job) for job in failed[:limit]]

  async def stale_processing_jobs(self, cutoff: datetime) -> list[GenerationJob]:
    stale = [job for job in self._jobs.values() if job.status == "processing" and (job.last_processed_at is None or job.last_processed_at < cutoff)]
    return [copy.deepcopy(job) for job in stale]

  async def stats(self) -> QueueStats:
    counts = dict.fromkeys(JOB_STATUSES, 0)
    for job in self._jobs.values():
      counts[job.status] += 1
    return QueueStats(**counts, total=len(self._jobs))

  async def delete_jobs_for_path(self, path_id: str) -> int:
    async with self._lock:
      doomed = [job_id for job_id, job in self._jobs.items() if job.path_id == path_id]
      for job_id in doomed:
        del self._jobs[job_id]
      return len(doomed)

  async def delete_terminal_before(self, cutoff: datetime) -> int:
    async with self._lock:
      doomed = [job_id for job_id, job in self._jobs.items() if job.status in TERMINAL_JOB_STATUSES and job.updated_at is not None and job.updated_at < cutoff]
      for job_id in doomed:
        del self._jobs[job_id]
      return len(doomed)


class InMemoryGroupsRepository:
  def __init__(self) -> None:
    self._groups: dict[str, GenerationGroup] = {}
    self._lock = asyncio.Lock()

  async def create_group(self, group: GenerationGroup) -> None:
    async with self._lock:
      self._groups[group.group_id] = copy.deepcopy(group)

  async def get_group(self, group_id: str) -> GenerationGroup | None:
    group = self._groups.get(group_id)
    return copy.deepcopy(group) if group else None

  async def groups_for_path(self, path_id: str, status: GroupState | None = None) -> list[GenerationGroup]:
    groups = [group for group in self._groups.values() if group.path_id == path_id and (status is None or group.status == status)]
    groups.sort(key=lambda group: group.week_number)
    return [copy.deepcopy(group) for group in groups]

  async def update_target(self, group_id: str, target_id: str, **changes: Any) -> GenerationTarget | None:
    unknown = set(changes) - _TARGET_FIELDS
    if unknown:
      raise ValueError(f"Unknown target fields: {', '.join(sorted(unknown))}")
    async with self._lock:
      group = self._groups.get(group_id)
      if group is None:
        return None
      for target in group.targets:
        if target.target_id == target_id:
          for name, value in changes.items():
            setattr(target, name, value)
          return copy.deepcopy(target)
      return None

  async def reset_failed_targets(self, group_id: str) -> int:
    async with self._lock:
      group = self._groups.get(group_id)
      if group is None:
        return 0
      reset = 0
      for target in group.targets:
        if target.generation_status == "failed":
          target.generation_status = "pending"
          target.retry_count = 0
          target.last_error = None
          reset += 1
      return reset


class InMemoryPathsRepository:
  def __init__(self) -> None:
    self._paths: dict[str, LearningPath] = {}
    self._lock = asyncio.Lock()

  async def create_path(self, path: LearningPath) -> None:
    async with self._lock:
      self._paths[path.path_id] = copy.deepcopy(path)

  async def get_path(self, path_id: str) -> LearningPath | None:
    path = self._paths.get(path_id)
    return copy.deepcopy(path) if path else None

  async def link_day_scenario(self, path_id: str, day_index: int, scenario_id: str) -> None:
    async with self._lock:
      path = self._paths.get(path_id)
      day = path.find_day(day_index) if path else None
      if day is not None:
        day.scenario_id = scenario_id
        day.is_unlocked = True

  async def set_path_status(self, path_id: str, status: PathStatus) -> None:
    async with self._lock:
      path = self._paths.get(path_id)
      if path is not None:
        path.status = status


class InMemoryScenariosRepository:
  def __init__(self) -> None:
    self._scenarios: dict[str, ScenarioRecord] = {}

  async def create_scenario(self, record: ScenarioRecord) -> None:
    self._scenarios[record.scenario_id] = copy.deepcopy(record)

  async def get_scenario(self, scenario_id: str) -> ScenarioRecord | None:
    record = self._scenarios.get(scenario_id)
    return copy.deepcopy(record) if record else None

  def __len__(self) -> int:
    return len(self._scenarios)
