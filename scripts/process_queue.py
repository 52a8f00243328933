"""Run one batch of the scenario generation queue from the command line.

Exit status is 1 when any job ended terminally failed during this run, 2 when
the job store is unavailable, and 0 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.core.exceptions import PersistenceError  # noqa: E402
from app.jobs.queue_processor import QueueProcessor  # noqa: E402

logger = logging.getLogger("scripts.process_queue")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
  parser = argparse.ArgumentParser(description="Process due scenario generation jobs.")
  parser.add_argument("--limit", type=int, default=None, help="Maximum jobs to process (defaults to PATHGEN_QUEUE_DEFAULT_LIMIT).")
  parser.add_argument("--dry-run", action="store_true", help="Count due jobs as processed without generating anything.")
  parser.add_argument("--stats", action="store_true", help="Print queue stats and exit.")
  parser.add_argument("--cleanup-days", type=int, default=None, help="Delete ready/failed jobs older than this many days before processing.")
  parser.add_argument("--recover-stale", action="store_true", help="Return jobs stuck in processing to the queue before processing.")
  args = parser.parse_args(argv)
  if args.limit is not None and args.limit <= 0:
    parser.error("--limit must be a positive integer")
  if args.cleanup_days is not None and args.cleanup_days <= 0:
    parser.error("--cleanup-days must be a positive integer")
  return args


async def run_queue(args: argparse.Namespace, processor: QueueProcessor, *, default_limit: int = 5) -> int:
  """Execute the requested actions against a ready-made processor."""
  if args.stats:
    print(json.dumps(asdict(await processor.get_queue_stats())))
    return 0

  if args.recover_stale:
    recovered = await processor.recover_stale_jobs()
    print(f"Recovered {recovered} stale jobs.")
  if args.cleanup_days is not None:
    deleted = await processor.cleanup_old_jobs(args.cleanup_days)
    print(f"Deleted {deleted} old jobs.")

  result = await processor.process_pending(args.limit or default_limit, dry_run=args.dry_run)
  print(json.dumps({"processed": result.processed, "succeeded": result.succeeded, "failed": result.failed, "skipped": result.skipped, "dry_run": args.dry_run}))
  for error in result.errors:
    print(f"  {'FAILED' if error.terminal else 'retry'} {error.job_id}: {error.error}")

  print(json.dumps(asdict(await processor.get_queue_stats())))
  return 1 if result.terminal_failures else 0


async def _main_async(args: argparse.Namespace) -> int:
  # Import after path setup so the script works when run directly.
  from app.ai.generator import build_content_generator
  from app.config import get_settings
  from app.core.database import dispose_engine
  from app.core.logging import initialize_logging
  from app.storage.factory import build_repositories

  settings = get_settings()
  initialize_logging(settings, prefix="pathgen_queue")

  needs_generator = not (args.stats or args.dry_run)
  try:
    generator = build_content_generator(settings) if needs_generator else None
  except ValueError as exc:
    print(f"Error: {exc}")
    return 2

  try:
    repos = build_repositories(settings)
    processor = QueueProcessor(jobs_repo=repos.jobs, paths_repo=repos.paths, scenarios_repo=repos.scenarios, generator=generator, policy=settings.policy)
    return await run_queue(args, processor, default_limit=settings.queue_default_limit)
  except (PersistenceError, RuntimeError) as exc:
    logger.error("Queue run aborted: %s", exc, exc_info=True)
    print(f"Error: {exc}")
    return 2
  finally:
    await dispose_engine()


def main(argv: list[str] | None = None) -> int:
  return asyncio.run(_main_async(_parse_args(argv)))


if __name__ == "__main__":
  sys.exit(main())
