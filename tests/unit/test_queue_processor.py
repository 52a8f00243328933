"""Unit tests for the batch queue processor against in-memory stores."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from app.core.exceptions import JobStateError, NotFoundError, PersistenceError
from app.jobs.models import BatchResult, EnqueueItem, GenerationJob
from app.jobs.queue_processor import QueueProcessor
from app.storage.memory_repo import InMemoryJobsRepository


def _assert_balanced(result: BatchResult) -> None:
  assert result.succeeded + result.skipped + result.failed == result.processed


def _fails_on_day(day_index: int):
  return lambda request: f"for day {day_index} of" in request.brief


class NaiveDueJobsRepository(InMemoryJobsRepository):
  """Returns every pending job regardless of target_date."""

  async def due_jobs(self, limit: int, now: datetime) -> list[GenerationJob]:
    return await super().due_jobs(limit, datetime.max.replace(tzinfo=now.tzinfo))


class BrokenReadyRepository(InMemoryJobsRepository):
  async def mark_ready(self, job_id: str) -> None:
    raise PersistenceError("queue_mark_ready failed (connectivity_error)")


@pytest.mark.anyio
async def test_enqueue_path_staggers_target_dates(processor, jobs_repo, clock) -> None:
  jobs = await processor.enqueue_path("path-1", [3, 1, 2], start_at=clock.now, interval=timedelta(days=1))
  assert [job.day_index for job in jobs] == [1, 2, 3]
  assert [job.target_date for job in jobs] == [clock.now, clock.now + timedelta(days=1), clock.now + timedelta(days=2)]
  assert all(job.status == "pending" and job.retry_count == 0 for job in jobs)


@pytest.mark.anyio
async def test_three_days_with_day_two_failing_ends_ready_two_failed_one(processor, jobs_repo, paths_repo, make_path, generator, clock) -> None:
  """Day 2 always fails: after three passes it is terminal and the rest are ready."""
  await make_path(days=3)
  await processor.enqueue_path("path-1", [1, 2, 3], start_at=clock.now, interval=timedelta(0))
  generator.fail_when = _fails_on_day(2)

  first = await processor.process_pending(10)
  assert (first.processed, first.succeeded, first.failed, first.skipped) == (3, 2, 1, 0)
  assert first.errors[0].terminal is False
  _assert_balanced(first)

  day_two = (await jobs_repo.jobs_for_path("path-1"))[1]
  assert day_two.status == "pending"
  assert day_two.last_error == "model unavailable"

  second = await processor.process_pending(10)
  assert (second.processed, second.failed) == (1, 1)
  assert second.errors[0].terminal is False

  third = await processor.process_pending(10)
  assert (third.processed, third.failed) == (1, 1)
  assert third.errors[0].terminal is True
  assert third.terminal_failures == 1

  stats = await processor.get_queue_stats()
  assert (stats.pending, stats.processing, stats.ready, stats.failed, stats.total) == (0, 0, 2, 1, 3)
  assert await jobs_repo.due_jobs(10, clock.now) == []

  fourth = await processor.process_pending(10)
  assert fourth.processed == 0

  path = await paths_repo.get_path("path-1")
  assert path.status == "active"
  assert path.find_day(1).scenario_id is not None
  assert path.find_day(1).is_unlocked is True
  assert path.find_day(2).scenario_id is None


@pytest.mark.anyio
async def test_dry_run_counts_success_without_side_effects(processor, jobs_repo, make_path, generator, clock) -> None:
  await make_path(days=5)
  await processor.enqueue_path("path-1", [1, 2, 3, 4, 5], start_at=clock.now, interval=timedelta(0))

  result = await processor.process_pending(5, dry_run=True)

  assert (result.processed, result.succeeded, result.failed, result.skipped) == (5, 5, 0, 0)
  assert generator.requests == []
  assert {job.status for job in await jobs_repo.jobs_for_path("path-1")} == {"pending"}


@pytest.mark.anyio
async def test_future_job_is_skipped_even_when_fetched(paths_repo, scenarios_repo, generator, policy, clock, make_path) -> None:
  """Due-time gating holds even against a store that ignores target_date."""
  jobs_repo = NaiveDueJobsRepository(clock=clock)
  processor = QueueProcessor(jobs_repo=jobs_repo, paths_repo=paths_repo, scenarios_repo=scenarios_repo, generator=generator, policy=policy, clock=clock)
  await make_path(days=1)
  await jobs_repo.enqueue("path-1", [EnqueueItem(day_index=1, target_date=clock.now + timedelta(hours=1))])

  result = await processor.process_pending(10)

  assert (result.processed, result.succeeded, result.failed, result.skipped) == (1, 0, 0, 1)
  assert generator.requests == []
  assert (await jobs_repo.jobs_for_path("path-1"))[0].status == "pending"


@pytest.mark.anyio
async def test_linked_day_is_marked_ready_without_generating(processor, jobs_repo, paths_repo, make_path, generator, clock) -> None:
  await make_path(days=1)
  await paths_repo.link_day_scenario("path-1", 1, "custom-existing")
  await processor.enqueue_path("path-1", [1], start_at=clock.now)

  result = await processor.process_pending(10)

  assert result.succeeded == 1
  assert generator.requests == []
  assert (await jobs_repo.jobs_for_path("path-1"))[0].status == "ready"


@pytest.mark.anyio
async def test_rerunning_a_fulfilled_job_never_generates_twice(processor, jobs_repo, make_path, generator, clock) -> None:
  await make_path(days=1)
  [job] = await processor.enqueue_path("path-1", [1], start_at=clock.now)

  await processor.process_pending(10)
  # Put the fulfilled job back in line as a crashed worker retry would.
  await jobs_repo.reset_for_retry(job.job_id, "retry")
  second = await processor.process_pending(10)

  assert second.succeeded == 1
  assert len(generator.requests) == 1
  assert (await jobs_repo.get_job(job.job_id)).status == "ready"


@pytest.mark.anyio
async def test_lost_claim_is_not_processed(processor, jobs_repo, make_path, generator, clock) -> None:
  await make_path(days=1)
  [job] = await processor.enqueue_path("path-1", [1], start_at=clock.now)
  # Another worker claims the job after we fetched it.
  assert await jobs_repo.mark_processing(job.job_id, expected_retry_count=0, now=clock.now) is not None

  assert await processor.process_job(job) is False
  assert generator.requests == []


@pytest.mark.anyio
async def test_missing_path_counts_against_retry_budget(processor, jobs_repo, clock) -> None:
  await processor.enqueue_path("ghost", [1], start_at=clock.now)

  result = await processor.process_pending(10)

  assert result.failed == 1
  assert "ghost not found" in result.errors[0].error
  [job] = await jobs_repo.jobs_for_path("ghost")
  assert job.status == "pending"
  assert job.last_error is not None


@pytest.mark.anyio
async def test_missing_day_raises_not_found(processor, make_path, clock) -> None:
  await make_path(days=1)
  [job] = await processor.enqueue_path("path-1", [7], start_at=clock.now)

  with pytest.raises(NotFoundError, match="Day 7"):
    await processor.process_job(job)


@pytest.mark.anyio
async def test_hung_generator_times_out_and_batch_continues(processor, jobs_repo, make_path, generator, clock) -> None:
  await make_path(days=2)
  await processor.enqueue_path("path-1", [1, 2], start_at=clock.now, interval=timedelta(0))
  generator.hang = True

  result = await processor.process_pending(10)

  assert (result.processed, result.failed) == (2, 2)
  assert all("timed out" in error.error for error in result.errors)
  assert {job.status for job in await jobs_repo.jobs_for_path("path-1")} == {"pending"}


@pytest.mark.anyio
async def test_store_failure_aborts_the_batch(paths_repo, scenarios_repo, generator, policy, clock, make_path) -> None:
  jobs_repo = BrokenReadyRepository(clock=clock)
  processor = QueueProcessor(jobs_repo=jobs_repo, paths_repo=paths_repo, scenarios_repo=scenarios_repo, generator=generator, policy=policy, clock=clock)
  await make_path(days=1)
  await processor.enqueue_path("path-1", [1], start_at=clock.now)

  with pytest.raises(PersistenceError):
    await processor.process_pending(10)


@pytest.mark.anyio
async def test_processing_without_generator_is_rejected(jobs_repo, paths_repo, scenarios_repo, clock) -> None:
  processor = QueueProcessor(jobs_repo=jobs_repo, paths_repo=paths_repo, scenarios_repo=scenarios_repo, generator=None, clock=clock)
  assert processor.has_generator is False
  with pytest.raises(RuntimeError):
    await processor.process_pending(5)
  assert (await processor.process_pending(5, dry_run=True)).processed == 0


@pytest.mark.anyio
async def test_cleanup_removes_only_old_terminal_jobs(processor, jobs_repo, make_path, clock) -> None:
  await make_path(days=2)
  ready, pending = await processor.enqueue_path("path-1", [1, 2], start_at=clock.now + timedelta(days=60), interval=timedelta(0))
  await jobs_repo.mark_ready(ready.job_id)
  clock.advance(days=31)

  assert await processor.cleanup_old_jobs(30) == 1
  assert await jobs_repo.get_job(ready.job_id) is None
  assert await jobs_repo.get_job(pending.job_id) is not None

  with pytest.raises(ValueError):
    await processor.cleanup_old_jobs(0)


@pytest.mark.anyio
async def test_requeue_failed_restores_budget(processor, jobs_repo, clock) -> None:
  [job] = await processor.enqueue_path("path-1", [1], start_at=clock.now)
  await jobs_repo.mark_failed(job.job_id, "boom")

  requeued = await processor.requeue_failed(job.job_id)

  assert (requeued.status, requeued.retry_count, requeued.last_error) == ("pending", 0, None)
  with pytest.raises(NotFoundError):
    await processor.requeue_failed("missing")


@pytest.mark.anyio
async def test_requeue_rejects_jobs_that_are_not_failed(processor, jobs_repo, clock) -> None:
  [pending, processing] = await processor.enqueue_path("path-1", [1, 2], start_at=clock.now)
  await jobs_repo.mark_processing(processing.job_id, expected_retry_count=0, now=clock.now)

  with pytest.raises(JobStateError, match="is processing"):
    await processor.requeue_failed(processing.job_id)
  with pytest.raises(JobStateError, match="is pending"):
    await processor.requeue_failed(pending.job_id)

  # The in-flight claim is untouched, so no second worker can claim it.
  assert (await jobs_repo.get_job(processing.job_id)).status == "processing"
  assert await jobs_repo.mark_processing(processing.job_id, expected_retry_count=0, now=clock.now) is None


@pytest.mark.anyio
async def test_recover_stale_jobs_counts_abandoned_attempt(processor, jobs_repo, clock, policy) -> None:
  [job] = await processor.enqueue_path("path-1", [1], start_at=clock.now)
  await jobs_repo.mark_processing(job.job_id, expected_retry_count=0, now=clock.now)
  clock.advance(seconds=policy.stale_processing_seconds + 1)

  assert await processor.recover_stale_jobs() == 1

  recovered = await jobs_repo.get_job(job.job_id)
  assert recovered.status == "pending"
  assert recovered.last_error == "Processing attempt abandoned"
  reclaimed = await jobs_repo.mark_processing(job.job_id, expected_retry_count=0, now=clock.now)
  assert reclaimed.retry_count == 1
