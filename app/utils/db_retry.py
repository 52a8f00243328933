"""Retry transient database failures and surface the rest as PersistenceError."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError

from app.core.exceptions import PersistenceError

T = TypeVar("T")
logger = logging.getLogger(__name__)

# SQLSTATE -> (retryable, category)
_SQLSTATE_RULES: dict[str, tuple[bool, str]] = {
  "40001": (True, "serialization_conflict"),
  "40P01": (True, "deadlock"),
  "55P03": (False, "lock_timeout"),
  "57014": (False, "query_timeout"),
}
_SQLSTATE_CLASS_RULES: dict[str, str] = {"23": "integrity_error", "42": "schema_error", "28": "permission_error", "08": "connectivity_error"}
_CONNECTION_HINTS = ("connection", "timeout", "reset", "network", "broken pipe", "lost connection")


@dataclass(frozen=True)
class DBFailureClassification:
  retryable: bool
  category: str
  sqlstate: str | None


def _extract_sqlstate(exc: BaseException) -> str | None:
  """Pull the Postgres SQLSTATE from the wrapped driver error when there is one."""
  if not isinstance(exc, DBAPIError):
    return None
  orig = getattr(exc, "orig", None)
  for attribute in ("sqlstate", "pgcode"):
    value = getattr(orig, attribute, None)
    if value:
      return str(value)
  return None


def classify_db_failure(exc: BaseException) -> DBFailureClassification:
  """Classify a database failure as transient (retry) or permanent (fail fast).

  SQLSTATE is the primary signal; exception type and message are the fallback.
  Serialization failures, deadlocks and dropped connections are retried.
  Integrity, schema and permission errors are not.
  """
  sqlstate = _extract_sqlstate(exc)
  if sqlstate in _SQLSTATE_RULES:
    retryable, category = _SQLSTATE_RULES[sqlstate]
    return DBFailureClassification(retryable=retryable, category=category, sqlstate=sqlstate)
  if sqlstate and sqlstate[:2] in _SQLSTATE_CLASS_RULES:
    category = _SQLSTATE_CLASS_RULES[sqlstate[:2]]
    return DBFailureClassification(retryable=category == "connectivity_error", category=category, sqlstate=sqlstate)

  if isinstance(exc, IntegrityError):
    return DBFailureClassification(retryable=False, category="integrity_error", sqlstate=sqlstate)
  if isinstance(exc, OperationalError | ConnectionError | OSError):
    message = str(exc).lower()
    if isinstance(exc, ConnectionError) or any(hint in message for hint in _CONNECTION_HINTS):
      return DBFailureClassification(retryable=True, category="connectivity_error", sqlstate=sqlstate)
    return DBFailureClassification(retryable=False, category="operational_error_unknown", sqlstate=sqlstate)
  return DBFailureClassification(retryable=False, category="unknown_error", sqlstate=sqlstate)


async def execute_with_retry(*, operation_name: str, func: Callable[[], Awaitable[T]], max_attempts: int = 3, initial_backoff_ms: int = 100, max_backoff_ms: int = 2000, jitter: bool = True) -> T:
  """Run an idempotent store operation, retrying transient failures with exponential backoff.

  Database errors that are permanent, or still failing after ``max_attempts``,
  are raised as PersistenceError. Non-database exceptions pass through untouched.
  """
  attempt = 0
  while True:
    attempt += 1
    try:
      return await func()
    except (SQLAlchemyError, ConnectionError, OSError) as exc:
      classification = classify_db_failure(exc)
      logger.warning(
        "DB operation failed: operation=%s, attempt=%d/%d, category=%s, sqlstate=%s, retryable=%s",
        operation_name,
        attempt,
        max_attempts,
        classification.category,
        classification.sqlstate or "none",
        classification.retryable,
        exc_info=not classification.retryable,
      )
      if not classification.retryable or attempt >= max_attempts:
        raise PersistenceError(f"{operation_name} failed ({classification.category})") from exc

      backoff_ms = min(initial_backoff_ms * (2 ** (attempt - 1)), max_backoff_ms)
      if jitter:
        # +/-25% so concurrent retries spread out.
        backoff_ms += random.uniform(-backoff_ms * 0.25, backoff_ms * 0.25)
      logger.info("Retrying DB operation after backoff: operation=%s, attempt=%d/%d, backoff_ms=%.1f", operation_name, attempt, max_attempts, backoff_ms)
      await asyncio.sleep(backoff_ms / 1000.0)
