"""Unit tests for shared retry, timeout and staleness rules."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from app.core.exceptions import GenerationError, GenerationTimeoutError, NotFoundError, PersistenceError
from app.jobs.retry import describe_error, guarded_generation, is_fatal, is_stale, is_target_exhausted, job_should_retry, next_retry_count, run_with_timeout, target_should_retry

NOW = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


@pytest.mark.anyio
async def test_run_with_timeout_raises_generation_timeout() -> None:
  """A hung call surfaces as GenerationTimeoutError, which is a GenerationError."""
  with pytest.raises(GenerationTimeoutError) as excinfo:
    await run_with_timeout(asyncio.sleep(10), 0.01)
  assert isinstance(excinfo.value, GenerationError)
  assert excinfo.value.timeout_seconds == 0.01


@pytest.mark.anyio
async def test_run_with_timeout_returns_value() -> None:
  async def _answer() -> int:
    return 42

  assert await run_with_timeout(_answer(), 1) == 42


@pytest.mark.anyio
async def test_guarded_generation_wraps_unknown_errors() -> None:
  async def _boom() -> None:
    raise ValueError("bad payload")

  with pytest.raises(GenerationError, match="bad payload"):
    await guarded_generation(_boom(), 1)


@pytest.mark.anyio
async def test_guarded_generation_keeps_pipeline_errors() -> None:
  async def _store_down() -> None:
    raise PersistenceError("db down")

  with pytest.raises(PersistenceError):
    await guarded_generation(_store_down(), 1)


def test_next_retry_count_only_bumps_after_failure() -> None:
  assert next_retry_count(0, previously_failed=False) == 0
  assert next_retry_count(0, previously_failed=True) == 1
  assert next_retry_count(2, previously_failed=True) == 3


def test_job_should_retry_allows_max_retries_attempts() -> None:
  # retry_count is the in-flight value: 0 on the first attempt.
  assert job_should_retry(0, 3)
  assert job_should_retry(1, 3)
  assert not job_should_retry(2, 3)


def test_target_should_retry_counts_retries_after_first_attempt() -> None:
  assert target_should_retry(0, 3)
  assert target_should_retry(2, 3)
  assert not target_should_retry(3, 3)


def test_is_target_exhausted_requires_failed_status() -> None:
  assert is_target_exhausted("failed", 3, 3)
  assert not is_target_exhausted("failed", 2, 3)
  assert not is_target_exhausted("generating", 5, 3)


def test_is_stale_treats_missing_timestamp_as_stale() -> None:
  assert is_stale(None, NOW, 120)
  assert is_stale(NOW - timedelta(minutes=3), NOW, 120)
  assert not is_stale(NOW - timedelta(seconds=30), NOW, 120)


def test_describe_error_falls_back_to_type_name() -> None:
  assert describe_error(RuntimeError("  upstream 502 ")) == "upstream 502"
  assert describe_error(NotFoundError()) == "NotFoundError"


def test_is_fatal_only_for_persistence_errors() -> None:
  assert is_fatal(PersistenceError("down"))
  assert not is_fatal(GenerationError("nope"))
  assert not is_fatal(NotFoundError("gone"))
