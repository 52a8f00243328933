"""Storage interface for adaptive week groups and their generation targets."""

from __future__ import annotations

from typing import Any, Protocol

from app.jobs.models import GenerationGroup, GenerationTarget, GroupState


class GroupsRepository(Protocol):
  """Repository contract for groups.

  Targets are addressed by ``(group_id, target_id)`` and updated field by field;
  the target list is never rewritten as a whole.
  """

  async def create_group(self, group: GenerationGroup) -> None:
    """Persist a group with its targets in stored order."""

  async def get_group(self, group_id: str) -> GenerationGroup | None:
    """Load a group and its targets in stored order."""

  async def groups_for_path(self, path_id: str, status: GroupState | None = None) -> list[GenerationGroup]:
    """Groups of a path ordered by week_number."""

  async def update_target(self, group_id: str, target_id: str, **changes: Any) -> GenerationTarget | None:
    """Apply the given field changes to one target. None values are written as None."""

  async def reset_failed_targets(self, group_id: str) -> int:
    """Return failed targets to pending with a zero retry count."""
