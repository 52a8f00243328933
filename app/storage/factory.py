"""Select repository implementations for the configured storage backend."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from app.config import Settings
from app.storage.groups_repo import GroupsRepository
from app.storage.jobs_repo import GenerationJobsRepository
from app.storage.paths_repo import PathsRepository, ScenariosRepository


@dataclass(frozen=True)
class Repositories:
  jobs: GenerationJobsRepository
  groups: GroupsRepository
  paths: PathsRepository
  scenarios: ScenariosRepository


@lru_cache(maxsize=1)
def _memory_repositories() -> Repositories:
  # One shared set per process so API calls and queue runs see the same data.
  from app.storage.memory_repo import InMemoryGroupsRepository, InMemoryJobsRepository, InMemoryPathsRepository, InMemoryScenariosRepository

  return Repositories(jobs=InMemoryJobsRepository(), groups=InMemoryGroupsRepository(), paths=InMemoryPathsRepository(), scenarios=InMemoryScenariosRepository())


def build_repositories(settings: Settings) -> Repositories:
  if settings.storage_backend == "memory":
    return _memory_repositories()

  if not settings.pg_dsn:
    raise RuntimeError("PATHGEN_PG_DSN must be set when PATHGEN_STORAGE_BACKEND=postgres.")

  from app.storage.postgres_groups_repo import PostgresGroupsRepository
  from app.storage.postgres_jobs_repo import PostgresJobsRepository
  from app.storage.postgres_paths_repo import PostgresPathsRepository, PostgresScenariosRepository

  return Repositories(jobs=PostgresJobsRepository(), groups=PostgresGroupsRepository(), paths=PostgresPathsRepository(), scenarios=PostgresScenariosRepository())
