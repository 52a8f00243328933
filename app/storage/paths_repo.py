"""Storage interfaces for learning paths and generated scenarios."""

from __future__ import annotations

from typing import Protocol

from app.jobs.models import LearningPath, PathStatus, ScenarioRecord


class PathsRepository(Protocol):
  """Repository contract for learning paths and their day schedule."""

  async def create_path(self, path: LearningPath) -> None:
    """Persist a path with its days."""

  async def get_path(self, path_id: str) -> LearningPath | None:
    """Load a path with its days."""

  async def link_day_scenario(self, path_id: str, day_index: int, scenario_id: str) -> None:
    """Attach a scenario to a day and unlock it."""

  async def set_path_status(self, path_id: str, status: PathStatus) -> None:
    """Move a path to a new lifecycle status."""


class ScenariosRepository(Protocol):
  """Repository contract for generated scenarios."""

  async def create_scenario(self, record: ScenarioRecord) -> None:
    """Persist a generated scenario."""

  async def get_scenario(self, scenario_id: str) -> ScenarioRecord | None:
    """Fetch a scenario by identifier."""
