"""Postgres-backed repositories for learning paths and generated scenarios."""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.jobs.models import LearningPath, PathDay, PathStatus, ScenarioRecord
from app.schema.paths import LearningPathDayRow, LearningPathRow, ScenarioRow
from app.utils.db_retry import execute_with_retry


def _row_to_path(row: LearningPathRow) -> LearningPath:
  return LearningPath(
    path_id=row.path_id,
    user_id=row.user_id,
    target_language=row.target_language,
    title=row.title,
    status=row.status,  # type: ignore[arg-type]
    days=[
      PathDay(
        day_index=day.day_index,
        theme=day.theme,
        difficulty=day.difficulty,
        learning_objectives=list(day.learning_objectives or []),
        description=day.description,
        scenario_id=day.scenario_id,
        is_unlocked=day.is_unlocked,
      )
      for day in row.days
    ],
  )


class PostgresPathsRepository:
  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_path(self, path: LearningPath) -> None:
    async def _run() -> None:
      async with self._session_factory() as session:
        row = LearningPathRow(path_id=path.path_id, user_id=path.user_id, target_language=path.target_language, title=path.title, status=path.status)
        row.days = [
          LearningPathDayRow(
            day_index=day.day_index,
            theme=day.theme,
            difficulty=day.difficulty,
            description=day.description,
            learning_objectives=list(day.learning_objectives),
            scenario_id=day.scenario_id,
            is_unlocked=day.is_unlocked,
          )
          for day in path.days
        ]
        session.add(row)
        await session.commit()

    await execute_with_retry(operation_name="paths_create", func=_run)

  async def get_path(self, path_id: str) -> LearningPath | None:
    async def _run() -> LearningPath | None:
      async with self._session_factory() as session:
        row = await session.get(LearningPathRow, path_id)
        return _row_to_path(row) if row is not None else None

    return await execute_with_retry(operation_name="paths_get", func=_run)

  async def link_day_scenario(self, path_id: str, day_index: int, scenario_id: str) -> None:
    async def _run() -> None:
      async with self._session_factory() as session:
        stmt = update(LearningPathDayRow).where(LearningPathDayRow.path_id == path_id, LearningPathDayRow.day_index == day_index).values(scenario_id=scenario_id, is_unlocked=True)
        await session.execute(stmt.execution_options(synchronize_session=False))
        await session.commit()

    await execute_with_retry(operation_name="paths_link_day_scenario", func=_run)

  async def set_path_status(self, path_id: str, status: PathStatus) -> None:
    async def _run() -> None:
      async with self._session_factory() as session:
        stmt = update(LearningPathRow).where(LearningPathRow.path_id == path_id).values(status=status)
        await session.execute(stmt.execution_options(synchronize_session=False))
        await session.commit()

    await execute_with_retry(operation_name="paths_set_status", func=_run)


class PostgresScenariosRepository:
  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_scenario(self, record: ScenarioRecord) -> None:
    async def _run() -> None:
      async with self._session_factory() as session:
        session.add(
          ScenarioRow(
            scenario_id=record.scenario_id,
            title=record.title,
            description=record.description,
            difficulty=record.difficulty,
            cefr_level=record.cefr_level,
            created_by_user_id=record.created_by_user_id,
            learning_objectives=list(record.learning_objectives),
            tags=list(record.tags),
            content_json=dict(record.content),
          )
        )
        await session.commit()

    await execute_with_retry(operation_name="scenarios_create", func=_run)

  async def get_scenario(self, scenario_id: str) -> ScenarioRecord | None:
    async def _run() -> ScenarioRecord | None:
      async with self._session_factory() as session:
        row = await session.get(ScenarioRow, scenario_id)
        if row is None:
          return None
        return ScenarioRecord(
          scenario_id=row.scenario_id,
          title=row.title,
          description=row.description,
          difficulty=row.difficulty,
          cefr_level=row.cefr_level,
          created_by_user_id=row.created_by_user_id,
          learning_objectives=list(row.learning_objectives or []),
          tags=list(row.tags or []),
          content=dict(row.content_json or {}),
          created_at=row.created_at,
        )

    return await execute_with_retry(operation_name="scenarios_get", func=_run)
