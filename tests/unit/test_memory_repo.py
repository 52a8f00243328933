from __future__ import annotations

from datetime import timedelta

import pytest

from app.jobs.models import EnqueueItem


@pytest.mark.anyio
async def test_claim_is_conditional_on_status_and_retry_count(jobs_repo, clock) -> None:
  [job] = await jobs_repo.enqueue("path-1", [EnqueueItem(day_index=1, target_date=clock.now)])

  assert await jobs_repo.mark_processing(job.job_id, expected_retry_count=1, now=clock.now) is None
  claimed = await jobs_repo.mark_processing(job.job_id, expected_retry_count=0, now=clock.now)
  assert (claimed.status, claimed.retry_count, claimed.last_processed_at) == ("processing", 0, clock.now)
  assert await jobs_repo.mark_processing(job.job_id, expected_retry_count=0, now=clock.now) is None


@pytest.mark.anyio
async def test_due_jobs_orders_by_target_date_and_honours_limit(jobs_repo, clock) -> None:
  items = [EnqueueItem(day_index=index, target_date=clock.now - timedelta(hours=index)) for index in (1, 2, 3)]
  items.append(EnqueueItem(day_index=4, target_date=clock.now + timedelta(hours=1)))
  await jobs_repo.enqueue("path-1", items)

  due = await jobs_repo.due_jobs(2, clock.now)

  assert [job.day_index for job in due] == [3, 2]
  assert len(await jobs_repo.due_jobs(10, clock.now)) == 3


@pytest.mark.anyio
async def test_returned_jobs_are_copies(jobs_repo, clock) -> None:
  [job] = await jobs_repo.enqueue("path-1", [EnqueueItem(day_index=1, target_date=clock.now)])
  job.status = "failed"
  assert (await jobs_repo.get_job(job.job_id)).status == "pending"


@pytest.mark.anyio
async def test_stats_and_failed_listing(jobs_repo, clock) -> None:
  jobs = await jobs_repo.enqueue("path-1", [EnqueueItem(day_index=index, target_date=clock.now) for index in (1, 2, 3)])
  await jobs_repo.mark_ready(jobs[0].job_id)
  await jobs_repo.mark_failed(jobs[1].job_id, "boom")
  clock.advance(minutes=1)
  await jobs_repo.mark_failed(jobs[2].job_id, "later boom")

  stats = await jobs_repo.stats()
  assert (stats.pending, stats.processing, stats.ready, stats.failed, stats.total) == (0, 0, 1, 2, 3)
  assert [job.last_error for job in await jobs_repo.failed_jobs()] == ["later boom", "boom"]
  assert len(await jobs_repo.jobs_for_path("path-1", status="failed")) == 2


@pytest.mark.anyio
async def test_requeue_only_moves_failed_jobs(jobs_repo, clock) -> None:
  pending, processing, ready, failed = await jobs_repo.enqueue("path-1", [EnqueueItem(day_index=index, target_date=clock.now) for index in (1, 2, 3, 4)])
  await jobs_repo.mark_processing(processing.job_id, expected_retry_count=0, now=clock.now)
  await jobs_repo.mark_ready(ready.job_id)
  await jobs_repo.mark_failed(failed.job_id, "boom")

  for job in (pending, processing, ready):
    assert await jobs_repo.requeue(job.job_id) is None
  assert (await jobs_repo.get_job(processing.job_id)).status == "processing"
  assert (await jobs_repo.get_job(ready.job_id)).status == "ready"
  assert await jobs_repo.requeue("missing") is None

  requeued = await jobs_repo.requeue(failed.job_id)
  assert (requeued.status, requeued.retry_count, requeued.last_error) == ("pending", 0, None)


@pytest.mark.anyio
async def test_delete_jobs_for_path(jobs_repo, clock) -> None:
  await jobs_repo.enqueue("path-1", [EnqueueItem(day_index=1, target_date=clock.now)])
  await jobs_repo.enqueue("path-2", [EnqueueItem(day_index=1, target_date=clock.now)])

  assert await jobs_repo.delete_jobs_for_path("path-1") == 1
  assert (await jobs_repo.stats()).total == 1


@pytest.mark.anyio
async def test_update_target_rejects_unknown_fields(groups_repo, make_group) -> None:
  await make_group(targets=1)

  with pytest.raises(ValueError, match="bogus"):
    await groups_repo.update_target("week-1", "seed-1", bogus=True)
  assert await groups_repo.update_target("week-1", "missing", retry_count=1) is None
  assert await groups_repo.update_target("nope", "seed-1", retry_count=1) is None

  updated = await groups_repo.update_target("week-1", "seed-1", retry_count=2, last_error="x")
  assert (updated.retry_count, updated.last_error) == (2, "x")


@pytest.mark.anyio
async def test_groups_for_path_filters_by_status(groups_repo, make_group) -> None:
  await make_group("week-2", week_number=2)
  await make_group("week-1", week_number=1)
  await make_group("week-3", week_number=3, status="locked")

  assert [group.group_id for group in await groups_repo.groups_for_path("path-1")] == ["week-1", "week-2", "week-3"]
  assert [group.group_id for group in await groups_repo.groups_for_path("path-1", status="active")] == ["week-1", "week-2"]


@pytest.mark.anyio
async def test_link_day_scenario_unlocks_the_day(paths_repo, make_path) -> None:
  await make_path(days=2)

  await paths_repo.link_day_scenario("path-1", 2, "custom-abc")
  await paths_repo.link_day_scenario("path-1", 9, "custom-ignored")

  path = await paths_repo.get_path("path-1")
  assert (path.find_day(2).scenario_id, path.find_day(2).is_unlocked) == ("custom-abc", True)
  assert path.find_day(1).is_unlocked is False
