"""Polling runner that generates the scenarios of a week group one target at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from app.ai.generator import ContentGenerator, GenerationRequest
from app.config import QueuePolicy
from app.core.exceptions import NotFoundError
from app.jobs.briefs import build_target_brief, map_cefr_to_difficulty
from app.jobs.models import GROUP_NOT_FOUND, NO_PENDING_TARGETS, GenerateNextResult, GenerationGroup, GenerationTarget, GroupStatus, PathGenerationStatus, ScenarioRecord, TargetStatus, TargetStatusView
from app.jobs.retry import describe_error, guarded_generation, is_fatal, is_stale, is_target_exhausted, next_retry_count, target_should_retry
from app.storage.groups_repo import GroupsRepository
from app.storage.paths_repo import ScenariosRepository
from app.utils.ids import generate_scenario_id

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]
ProgressCallback = Callable[[GroupStatus], None]


def _utc_now() -> datetime:
  return datetime.now(UTC)


def select_next_target(targets: list[GenerationTarget], *, now: datetime, policy: QueuePolicy) -> GenerationTarget | None:
  """First target in stored order that still needs an attempt."""
  for target in targets:
    if target.is_done:
      continue
    if target.generation_status == "generating" and not is_stale(target.last_attempt_at, now, policy.stale_after_seconds):
      continue
    if is_target_exhausted(target.generation_status, target.retry_count, policy.max_retries):
      continue
    return target
  return None


def summarize_group(group: GenerationGroup, policy: QueuePolicy) -> GroupStatus:
  """Derive counts from the targets; completion is decided by content ids alone."""
  ready = pending = generating = failed = exhausted = 0
  views: list[TargetStatusView] = []
  for target in group.targets:
    target_exhausted = not target.is_done and is_target_exhausted(target.generation_status, target.retry_count, policy.max_retries)
    view_status: TargetStatus
    if target.is_done:
      ready += 1
      view_status = "ready"
    elif target.generation_status == "generating":
      generating += 1
      view_status = "generating"
    elif target.generation_status == "failed":
      failed += 1
      view_status = "failed"
    else:
      # "ready" without a content_id is not done.
      pending += 1
      view_status = "pending"
    if target_exhausted:
      exhausted += 1
    views.append(
      TargetStatusView(
        target_id=target.target_id,
        title=target.title,
        content_id=target.content_id,
        status=view_status,
        retry_count=target.retry_count,
        last_error=target.last_error,
        exhausted=target_exhausted,
      )
    )

  total = len(group.targets)
  return GroupStatus(
    group_id=group.group_id,
    week_number=group.week_number,
    theme=group.theme,
    ready_count=ready,
    pending_count=pending,
    generating_count=generating,
    failed_count=failed,
    exhausted_count=exhausted,
    total_count=total,
    is_complete=ready == total,
    has_failures=exhausted > 0,
    targets=tuple(views),
  )


class GroupRunner:
  """Advance a group's targets through pending -> generating -> ready/failed."""

  def __init__(
    self,
    *,
    groups_repo: GroupsRepository,
    scenarios_repo: ScenariosRepository,
    generator: ContentGenerator | None,
    policy: QueuePolicy | None = None,
    clock: Clock = _utc_now,
    sleep: Sleep = asyncio.sleep,
  ) -> None:
    self._groups = groups_repo
    self._scenarios = scenarios_repo
    self._generator = generator
    self._policy = policy or QueuePolicy()
    self._clock = clock
    self._sleep = sleep

  @property
  def has_generator(self) -> bool:
    return self._generator is not None

  async def generate_next(self, group_id: str) -> GenerateNextResult:
    """Attempt one target of the group.

    Returns ``success=True`` with the ``NO_PENDING_TARGETS`` sentinel error when
    nothing is left to try. Generator failures are reported in the result, not
    raised; store failures propagate.
    """
    group = await self._groups.get_group(group_id)
    if group is None:
      return GenerateNextResult(success=False, error=GROUP_NOT_FOUND, should_retry=False)

    target = select_next_target(group.targets, now=self._clock(), policy=self._policy)
    if target is None:
      return GenerateNextResult(success=True, error=NO_PENDING_TARGETS)
    if self._generator is None:
      raise RuntimeError("Content generator is not configured.")

    retry_count = next_retry_count(target.retry_count, previously_failed=target.generation_status == "failed")
    await self._groups.update_target(group.group_id, target.target_id, generation_status="generating", last_attempt_at=self._clock(), retry_count=retry_count)
    logger.info("Generating target %s of group %s (retry %d)", target.target_id, group.group_id, retry_count)

    try:
      request = GenerationRequest(brief=build_target_brief(target, group), mode="tutor", language_hint=group.target_language)
      content = await guarded_generation(self._generator.generate(request), self._policy.generation_timeout_seconds)
      scenario = ScenarioRecord(
        scenario_id=generate_scenario_id(),
        title=content.title or target.title,
        description=content.description or target.description,
        difficulty=content.difficulty or map_cefr_to_difficulty(group.difficulty_min),
        cefr_level=content.cefr_level or group.difficulty_min,
        created_by_user_id=group.user_id,
        learning_objectives=list(content.learning_objectives),
        tags=[f"week:{group.week_number}", f"seed:{target.target_id}", f"path:{group.path_id}"],
        content=content.model_dump(by_alias=True, exclude_none=True),
        created_at=self._clock(),
      )
      await self._scenarios.create_scenario(scenario)
    except Exception as exc:
      if is_fatal(exc):
        raise
      error = describe_error(exc)
      await self._groups.update_target(group.group_id, target.target_id, generation_status="failed", last_error=error)
      should_retry = target_should_retry(retry_count, self._policy.max_retries)
      logger.warning("Target %s of group %s failed (retry %d, should_retry=%s): %s", target.target_id, group.group_id, retry_count, should_retry, error)
      return GenerateNextResult(success=False, target_id=target.target_id, error=error, should_retry=should_retry)

    await self._groups.update_target(group.group_id, target.target_id, content_id=scenario.scenario_id, generation_status="ready", last_error=None)
    logger.info("Target %s of group %s ready with scenario %s", target.target_id, group.group_id, scenario.scenario_id)
    return GenerateNextResult(success=True, target_id=target.target_id, content_id=scenario.scenario_id)

  async def generate_all(self, group_id: str, on_progress: ProgressCallback | None = None) -> GroupStatus:
    """Run generate_next until the group is complete, stuck, idle or out of attempts."""
    for attempt in range(1, self._policy.max_run_attempts + 1):
      status = await self.get_group_status(group_id)
      if on_progress is not None:
        on_progress(status)

      if status.is_complete:
        logger.info("Group %s complete after %d attempts", group_id, attempt - 1)
        return status
      if status.ready_count + status.exhausted_count == status.total_count:
        logger.warning("Group %s has %d exhausted targets; stopping", group_id, status.exhausted_count)
        return status

      result = await self.generate_next(group_id)
      if result.is_idle:
        break
      if result.success and self._policy.generation_delay_seconds > 0:
        await self._sleep(self._policy.generation_delay_seconds)
    else:
      logger.warning("Group %s hit the %d attempt cap", group_id, self._policy.max_run_attempts)

    status = await self.get_group_status(group_id)
    if on_progress is not None:
      on_progress(status)
    return status

  async def get_group_status(self, group_id: str) -> GroupStatus:
    group = await self._groups.get_group(group_id)
    if group is None:
      raise NotFoundError(f"Group {group_id} not found")
    return summarize_group(group, self._policy)

  async def get_path_status(self, path_id: str) -> PathGenerationStatus:
    """Aggregate status across the active groups of a path."""
    groups = await self._groups.groups_for_path(path_id, status="active")
    statuses = tuple(summarize_group(group, self._policy) for group in groups)
    total_ready = sum(status.ready_count for status in statuses)
    total_pending = sum(status.pending_count for status in statuses)
    total_generating = sum(status.generating_count for status in statuses)
    total_failed = sum(status.failed_count for status in statuses)
    return PathGenerationStatus(
      path_id=path_id,
      groups=statuses,
      total_ready=total_ready,
      total_pending=total_pending,
      total_generating=total_generating,
      total_failed=total_failed,
      is_complete=total_pending == 0 and total_generating == 0 and total_failed == 0,
      needs_generation=total_pending > 0 or total_failed > 0,
    )

  async def reset_failed_targets(self, group_id: str) -> int:
    """Give failed targets a fresh retry budget."""
    group = await self._groups.get_group(group_id)
    if group is None:
      raise NotFoundError(f"Group {group_id} not found")
    reset = await self._groups.reset_failed_targets(group_id)
    logger.info("Reset %d failed targets in group %s", reset, group_id)
    return reset
