"""Shared fixtures: in-memory stores, a controllable clock and a scripted generator."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest

from app.ai.generator import GeneratedContent, GenerationRequest
from app.config import QueuePolicy
from app.jobs.group_runner import GroupRunner
from app.jobs.models import GenerationGroup, GenerationTarget, LearningPath, PathDay
from app.jobs.queue_processor import QueueProcessor
from app.storage.memory_repo import InMemoryGroupsRepository, InMemoryJobsRepository, InMemoryPathsRepository, InMemoryScenariosRepository

START = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


class FakeClock:
  def __init__(self, start: datetime) -> None:
    self.now = start

  def __call__(self) -> datetime:
    return self.now

  def advance(self, **kwargs: float) -> None:
    self.now += timedelta(**kwargs)


class ScriptedGenerator:
  """Records every request; fails or hangs on demand."""

  def __init__(self) -> None:
    self.requests: list[GenerationRequest] = []
    self.fail_when: Callable[[GenerationRequest], bool] | None = None
    self.hang = False

  async def generate(self, request: GenerationRequest) -> GeneratedContent:
    self.requests.append(request)
    if self.hang:
      await asyncio.sleep(3600)
    if self.fail_when is not None and self.fail_when(request):
      raise RuntimeError("model unavailable")
    return GeneratedContent(title=f"Scenario {len(self.requests)}", description="Order coffee at a busy cafe", cefrLevel="A2", learningObjectives=["ordering"])


class SleepRecorder:
  def __init__(self) -> None:
    self.calls: list[float] = []

  async def __call__(self, seconds: float) -> None:
    self.calls.append(seconds)


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock(START)


@pytest.fixture
def policy() -> QueuePolicy:
  return QueuePolicy(max_retries=3, generation_timeout_seconds=0.05, generation_delay_seconds=1.0)


@pytest.fixture
def jobs_repo(clock: FakeClock) -> InMemoryJobsRepository:
  return InMemoryJobsRepository(clock=clock)


@pytest.fixture
def paths_repo() -> InMemoryPathsRepository:
  return InMemoryPathsRepository()


@pytest.fixture
def groups_repo() -> InMemoryGroupsRepository:
  return InMemoryGroupsRepository()


@pytest.fixture
def scenarios_repo() -> InMemoryScenariosRepository:
  return InMemoryScenariosRepository()


@pytest.fixture
def generator() -> ScriptedGenerator:
  return ScriptedGenerator()


@pytest.fixture
def sleeper() -> SleepRecorder:
  return SleepRecorder()


@pytest.fixture
def processor(jobs_repo, paths_repo, scenarios_repo, generator, policy, clock) -> QueueProcessor:
  return QueueProcessor(jobs_repo=jobs_repo, paths_repo=paths_repo, scenarios_repo=scenarios_repo, generator=generator, policy=policy, clock=clock)


@pytest.fixture
def runner(groups_repo, scenarios_repo, generator, policy, clock, sleeper) -> GroupRunner:
  return GroupRunner(groups_repo=groups_repo, scenarios_repo=scenarios_repo, generator=generator, policy=policy, clock=clock, sleep=sleeper)


@pytest.fixture
def make_path(paths_repo: InMemoryPathsRepository) -> Callable[..., Awaitable[LearningPath]]:
  async def _make(path_id: str = "path-1", *, days: int = 3, status: str = "draft") -> LearningPath:
    path = LearningPath(
      path_id=path_id,
      user_id="user-1",
      target_language="es",
      title="Spanish for travel",
      status=status,  # type: ignore[arg-type]
      days=[PathDay(day_index=index, theme=f"Theme {index}", difficulty="A2", learning_objectives=[f"objective {index}"]) for index in range(1, days + 1)],
    )
    await paths_repo.create_path(path)
    return path

  return _make


@pytest.fixture
def make_group(groups_repo: InMemoryGroupsRepository) -> Callable[..., Awaitable[GenerationGroup]]:
  async def _make(group_id: str = "week-1", *, targets: int = 3, path_id: str = "path-1", week_number: int = 1, status: str = "active") -> GenerationGroup:
    group = GenerationGroup(
      group_id=group_id,
      path_id=path_id,
      user_id="user-1",
      target_language="es",
      week_number=week_number,
      theme="Cafe culture",
      theme_description="Everyday conversations in cafes",
      difficulty_min="A2",
      difficulty_max="B1",
      status=status,  # type: ignore[arg-type]
      targets=[GenerationTarget(target_id=f"seed-{index}", title=f"Seed {index}", description=f"Conversation {index}", vocabulary_hints=["cafe"]) for index in range(1, targets + 1)],
    )
    await groups_repo.create_group(group)
    return group

  return _make
