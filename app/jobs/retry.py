"""Retry, timeout and staleness rules shared by the queue processor and the group runner.

How/Why:
  - ``retry_count`` means the same thing everywhere: the number of attempts that
    started after a failed attempt. It is bumped when the next attempt begins
    (job claim, target marked generating), never when the failure is recorded.
  - Queue jobs give up once ``max_retries`` attempts have failed in a row.
  - Group targets get the first attempt plus ``max_retries`` retries, and a failed
    target whose ``retry_count`` reached ``max_retries`` is never selected again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime, timedelta
from typing import TypeVar

from app.core.exceptions import GenerationError, GenerationTimeoutError, PersistenceError, PipelineError

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_with_timeout(awaitable: Awaitable[T], timeout_seconds: float) -> T:
  """Await with a deadline; the pending call is cancelled when it expires."""
  try:
    return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
  except TimeoutError as exc:
    raise GenerationTimeoutError(timeout_seconds) from exc


async def guarded_generation(awaitable: Awaitable[T], timeout_seconds: float) -> T:
  """Run a generator call under the timeout and normalise its failures to GenerationError."""
  try:
    return await run_with_timeout(awaitable, timeout_seconds)
  except (PipelineError, asyncio.CancelledError):
    raise
  except Exception as exc:  # noqa: BLE001
    raise GenerationError(describe_error(exc)) from exc


def next_retry_count(retry_count: int, *, previously_failed: bool) -> int:
  """Retry count for an attempt that is about to start."""
  if previously_failed:
    return retry_count + 1
  return retry_count


def job_should_retry(retry_count: int, max_retries: int) -> bool:
  """Whether a queue job that just failed goes back to pending."""
  failed_attempts = retry_count + 1
  return failed_attempts < max_retries


def target_should_retry(retry_count: int, max_retries: int) -> bool:
  """Whether a group target that just failed may be attempted again."""
  return retry_count < max_retries


def is_target_exhausted(status: str, retry_count: int, max_retries: int) -> bool:
  return status == "failed" and retry_count >= max_retries


def is_stale(last_attempt_at: datetime | None, now: datetime, window_seconds: float) -> bool:
  """A missing timestamp counts as stale so abandoned targets never get stuck."""
  if last_attempt_at is None:
    return True
  return now - last_attempt_at > timedelta(seconds=window_seconds)


def describe_error(exc: BaseException) -> str:
  message = str(exc).strip()
  if not message:
    return type(exc).__name__
  return message


def is_fatal(exc: BaseException) -> bool:
  """Store failures abort a run instead of burning the job's retry budget."""
  return isinstance(exc, PersistenceError)
