"""Domain models for the scenario generation queue and adaptive week groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "ready", "failed"]
TargetStatus = Literal["pending", "generating", "ready", "failed"]
GroupState = Literal["active", "locked", "completed"]
PathStatus = Literal["draft", "active", "archived"]

JOB_STATUSES: tuple[JobStatus, ...] = ("pending", "processing", "ready", "failed")
TERMINAL_JOB_STATUSES: tuple[JobStatus, ...] = ("ready", "failed")

# Returned by the group runner when every target is done or exhausted.
NO_PENDING_TARGETS = "No pending seeds"
GROUP_NOT_FOUND = "Group not found"


@dataclass
class GenerationJob:
  """One queued request to generate the scenario for a single path day."""

  job_id: str
  path_id: str
  day_index: int
  status: JobStatus
  target_date: datetime
  retry_count: int = 0
  last_error: str | None = None
  last_processed_at: datetime | None = None
  created_at: datetime | None = None
  updated_at: datetime | None = None


@dataclass(frozen=True)
class EnqueueItem:
  day_index: int
  target_date: datetime


@dataclass
class GenerationTarget:
  """A conversation seed inside a week group, generated into one scenario."""

  target_id: str
  title: str
  description: str = ""
  session_types: list[str] = field(default_factory=list)
  vocabulary_hints: list[str] = field(default_factory=list)
  grammar_hints: list[str] = field(default_factory=list)
  content_id: str | None = None
  generation_status: TargetStatus = "pending"
  retry_count: int = 0
  last_error: str | None = None
  last_attempt_at: datetime | None = None

  @property
  def is_done(self) -> bool:
    # content_id wins over whatever generation_status says.
    return self.content_id is not None


@dataclass
class GenerationGroup:
  """An adaptive week of a learning path with its ordered targets."""

  group_id: str
  path_id: str
  user_id: str
  target_language: str
  week_number: int
  theme: str
  theme_description: str = ""
  difficulty_min: str = "A1"
  difficulty_max: str = "A2"
  status: GroupState = "active"
  targets: list[GenerationTarget] = field(default_factory=list)


@dataclass(frozen=True)
class TargetStatusView:
  target_id: str
  title: str
  content_id: str | None
  status: TargetStatus
  retry_count: int
  last_error: str | None
  exhausted: bool


@dataclass(frozen=True)
class GroupStatus:
  """Derived progress of a group. Never stored."""

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
  targets: tuple[TargetStatusView, ...] = ()


@dataclass(frozen=True)
class PathGenerationStatus:
  path_id: str
  groups: tuple[GroupStatus, ...]
  total_ready: int
  total_pending: int
  total_generating: int
  total_failed: int
  is_complete: bool
  needs_generation: bool


@dataclass(frozen=True)
class QueueStats:
  pending: int = 0
  processing: int = 0
  ready: int = 0
  failed: int = 0
  total: int = 0


@dataclass(frozen=True)
class JobError:
  job_id: str
  error: str
  terminal: bool = False


@dataclass
class BatchResult:
  """Aggregate outcome of one process_pending run."""

  processed: int = 0
  succeeded: int = 0
  failed: int = 0
  skipped: int = 0
  errors: list[JobError] = field(default_factory=list)

  @property
  def terminal_failures(self) -> int:
    return sum(1 for error in self.errors if error.terminal)


@dataclass(frozen=True)
class GenerateNextResult:
  success: bool
  target_id: str | None = None
  content_id: str | None = None
  error: str | None = None
  should_retry: bool = False

  @property
  def is_idle(self) -> bool:
    """True when the runner had nothing left to generate."""
    return self.success and self.target_id is None and self.error == NO_PENDING_TARGETS


@dataclass
class PathDay:
  day_index: int
  theme: str
  difficulty: str
  learning_objectives: list[str] = field(default_factory=list)
  description: str | None = None
  scenario_id: str | None = None
  is_unlocked: bool = False


@dataclass
class LearningPath:
  path_id: str
  user_id: str
  target_language: str
  title: str
  status: PathStatus = "draft"
  days: list[PathDay] = field(default_factory=list)

  def find_day(self, day_index: int) -> PathDay | None:
    for day in self.days:
      if day.day_index == day_index:
        return day
    return None


@dataclass
class ScenarioRecord:
  scenario_id: str
  title: str
  description: str
  difficulty: str
  cefr_level: str | None
  created_by_user_id: str | None
  learning_objectives: list[str] = field(default_factory=list)
  tags: list[str] = field(default_factory=list)
  content: dict[str, Any] = field(default_factory=dict)
  created_at: datetime | None = None
