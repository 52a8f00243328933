"""Generate every remaining scenario of a week group, printing progress as it goes."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.jobs.models import GroupStatus  # noqa: E402


def _print_progress(status: GroupStatus) -> None:
  print(f"[week {status.week_number}] ready {status.ready_count}/{status.total_count} failed={status.failed_count} generating={status.generating_count}")


async def _run(group_id: str, reset_failed: bool) -> int:
  from app.ai.generator import build_content_generator
  from app.config import get_settings
  from app.core.database import dispose_engine
  from app.core.exceptions import NotFoundError, PersistenceError
  from app.core.logging import initialize_logging
  from app.jobs.group_runner import GroupRunner
  from app.storage.factory import build_repositories

  settings = get_settings()
  initialize_logging(settings, prefix="pathgen_group")
  try:
    repos = build_repositories(settings)
    runner = GroupRunner(groups_repo=repos.groups, scenarios_repo=repos.scenarios, generator=build_content_generator(settings), policy=settings.policy)
    if reset_failed:
      print(f"Reset {await runner.reset_failed_targets(group_id)} failed targets.")
    status = await runner.generate_all(group_id, on_progress=_print_progress)
  except (NotFoundError, PersistenceError, ValueError, RuntimeError) as exc:
    print(f"Error: {exc}")
    return 2
  finally:
    await dispose_engine()

  print(f"Complete: {status.is_complete} (exhausted targets: {status.exhausted_count})")
  return 0 if status.is_complete else 1


def main(argv: list[str] | None = None) -> int:
  parser = argparse.ArgumentParser(description="Generate all scenarios for one week group.")
  parser.add_argument("group_id")
  parser.add_argument("--reset-failed", action="store_true", help="Give failed targets a fresh retry budget first.")
  args = parser.parse_args(argv)
  return asyncio.run(_run(args.group_id, args.reset_failed))


if __name__ == "__main__":
  sys.exit(main())
