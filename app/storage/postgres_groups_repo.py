"""Postgres-backed repository for week groups and their generation targets."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.jobs.models import GenerationGroup, GenerationTarget, GroupState
from app.schema.generation import GenerationGroupRow, GenerationTargetRow
from app.utils.db_retry import execute_with_retry

_UPDATABLE_FIELDS = frozenset({"title", "description", "session_types", "vocabulary_hints", "grammar_hints", "content_id", "generation_status", "retry_count", "last_error", "last_attempt_at"})


def _row_to_target(row: GenerationTargetRow) -> GenerationTarget:
  return GenerationTarget(
    target_id=row.target_id,
    title=row.title,
    description=row.description,
    session_types=list(row.session_types or []),
    vocabulary_hints=list(row.vocabulary_hints or []),
    grammar_hints=list(row.grammar_hints or []),
    content_id=row.content_id,
    generation_status=row.generation_status,  # type: ignore[arg-type]
    retry_count=row.retry_count,
    last_error=row.last_error,
    last_attempt_at=row.last_attempt_at,
  )


def _row_to_group(row: GenerationGroupRow, targets: list[GenerationTargetRow]) -> GenerationGroup:
  return GenerationGroup(
    group_id=row.group_id,
    path_id=row.path_id,
    user_id=row.user_id,
    target_language=row.target_language,
    week_number=row.week_number,
    theme=row.theme,
    theme_description=row.theme_description,
    difficulty_min=row.difficulty_min,
    difficulty_max=row.difficulty_max,
    status=row.status,  # type: ignore[arg-type]
    targets=[_row_to_target(target) for target in targets],
  )


class PostgresGroupsRepository:
  """Groups live in one table and their targets in another, keyed by (group_id, target_id)."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def _load_targets(self, session: AsyncSession, group_ids: list[str]) -> dict[str, list[GenerationTargetRow]]:
    stmt = select(GenerationTargetRow).where(GenerationTargetRow.group_id.in_(group_ids)).order_by(GenerationTargetRow.group_id, GenerationTargetRow.position)
    by_group: dict[str, list[GenerationTargetRow]] = {group_id: [] for group_id in group_ids}
    for row in (await session.execute(stmt)).scalars().all():
      by_group[row.group_id].append(row)
    return by_group

  async def create_group(self, group: GenerationGroup) -> None:
    async def _run() -> None:
      async with self._session_factory() as session:
        session.add(
          GenerationGroupRow(
            group_id=group.group_id,
            path_id=group.path_id,
            user_id=group.user_id,
            target_language=group.target_language,
            week_number=group.week_number,
            theme=group.theme,
            theme_description=group.theme_description,
            difficulty_min=group.difficulty_min,
            difficulty_max=group.difficulty_max,
            status=group.status,
          )
        )
        await session.flush()
        for position, target in enumerate(group.targets):
          session.add(
            GenerationTargetRow(
              group_id=group.group_id,
              target_id=target.target_id,
              position=position,
              title=target.title,
              description=target.description,
              session_types=list(target.session_types),
              vocabulary_hints=list(target.vocabulary_hints),
              grammar_hints=list(target.grammar_hints),
              content_id=target.content_id,
              generation_status=target.generation_status,
              retry_count=target.retry_count,
              last_error=target.last_error,
              last_attempt_at=target.last_attempt_at,
            )
          )
        await session.commit()

    await execute_with_retry(operation_name="groups_create", func=_run)

  async def get_group(self, group_id: str) -> GenerationGroup | None:
    async def _run() -> GenerationGroup | None:
      async with self._session_factory() as session:
        row = await session.get(GenerationGroupRow, group_id)
        if row is None:
          return None
        targets = await self._load_targets(session, [group_id])
        return _row_to_group(row, targets[group_id])

    return await execute_with_retry(operation_name="groups_get", func=_run)

  async def groups_for_path(self, path_id: str, status: GroupState | None = None) -> list[GenerationGroup]:
    async def _run() -> list[GenerationGroup]:
      async with self._session_factory() as session:
        stmt = select(GenerationGroupRow).where(GenerationGroupRow.path_id == path_id)
        if status is not None:
          stmt = stmt.where(GenerationGroupRow.status == status)
        rows = (await session.execute(stmt.order_by(GenerationGroupRow.week_number.asc()))).scalars().all()
        if not rows:
          return []
        targets = await self._load_targets(session, [row.group_id for row in rows])
        return [_row_to_group(row, targets[row.group_id]) for row in rows]

    return await execute_with_retry(operation_name="groups_for_path", func=_run)

  async def update_target(self, group_id: str, target_id: str, **changes: Any) -> GenerationTarget | None:
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
      raise ValueError(f"Unknown target fields: {', '.join(sorted(unknown))}")
    if not changes:
      raise ValueError("update_target requires at least one field.")

    async def _run() -> GenerationTarget | None:
      async with self._session_factory() as session:
        stmt = update(GenerationTargetRow).where(GenerationTargetRow.group_id == group_id, GenerationTargetRow.target_id == target_id).values(**changes).returning(GenerationTargetRow)
        row = (await session.execute(stmt)).scalar_one_or_none()
        target = _row_to_target(row) if row is not None else None
        await session.commit()
        return target

    return await execute_with_retry(operation_name="groups_update_target", func=_run)

  async def reset_failed_targets(self, group_id: str) -> int:
    async def _run() -> int:
      async with self._session_factory() as session:
        stmt = (
          update(GenerationTargetRow)
          .where(GenerationTargetRow.group_id == group_id, GenerationTargetRow.generation_status == "failed")
          .values(generation_status="pending", retry_count=0, last_error=None)
          .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        await session.commit()
        return int(result.rowcount or 0)

    return await execute_with_retry(operation_name="groups_reset_failed_targets", func=_run)
