"""Classification of database failures raised through SQLAlchemy."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

from scenario_queue.jobs.errors import QueueStoreError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

_CONNECTIVITY_PATTERNS = ("connection", "timeout", "reset", "network", "broken pipe", "lost connection", "refused")


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a database failure."""

  unavailable: bool
  reason: str
  sqlstate: str | None
  category: str


def _extract_sqlstate(exc: BaseException) -> str | None:
  """Extract the Postgres SQLSTATE from a SQLAlchemy exception."""
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    for attr in ("pgcode", "sqlstate"):
      value = getattr(exc.orig, attr, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: BaseException) -> DBFailureClassification:
  """
  Decide whether a database error means the store is unavailable.

  Primary signal: Postgres SQLSTATE
    - 08xxx: connection exceptions
    - 57P01/57P02/57P03: admin shutdown, crash shutdown, cannot connect now
    - 53xxx: insufficient resources
  Fallback: exception type and message patterns.
  """
  sqlstate = _extract_sqlstate(exc)

  if sqlstate and sqlstate.startswith("08"):
    return DBFailureClassification(unavailable=True, reason="Connection exception", sqlstate=sqlstate, category="connectivity_error")

  if sqlstate in {"57P01", "57P02", "57P03"}:
    return DBFailureClassification(unavailable=True, reason="Server shutting down or not accepting connections", sqlstate=sqlstate, category="server_unavailable")

  if sqlstate and sqlstate.startswith("53"):
    return DBFailureClassification(unavailable=True, reason="Insufficient resources", sqlstate=sqlstate, category="resource_exhausted")

  if (sqlstate and sqlstate.startswith("23")) or isinstance(exc, IntegrityError):
    return DBFailureClassification(unavailable=False, reason="Integrity constraint violation", sqlstate=sqlstate, category="integrity_error")

  if sqlstate and sqlstate.startswith("42"):
    return DBFailureClassification(unavailable=False, reason="Schema/SQL error (undefined table/column, syntax error)", sqlstate=sqlstate, category="schema_error")

  if isinstance(exc, InterfaceError):
    return DBFailureClassification(unavailable=True, reason="Driver interface error", sqlstate=sqlstate, category="connectivity_error")

  if isinstance(exc, OperationalError):
    error_msg = str(exc).lower()
    if any(pattern in error_msg for pattern in _CONNECTIVITY_PATTERNS):
      return DBFailureClassification(unavailable=True, reason="Transient connection/network error", sqlstate=sqlstate, category="connectivity_error")
    return DBFailureClassification(unavailable=False, reason="Operational error (unknown cause)", sqlstate=sqlstate, category="operational_error_unknown")

  if isinstance(exc, (ConnectionError, OSError, TimeoutError)):
    return DBFailureClassification(unavailable=True, reason=f"Socket-level failure: {type(exc).__name__}", sqlstate=None, category="connectivity_error")

  return DBFailureClassification(unavailable=False, reason=f"Unknown error type: {type(exc).__name__}", sqlstate=sqlstate, category="unknown_error")


def wrap_store_errors(operation: str) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
  """Re-raise database failures of a store method as QueueStoreError."""

  def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
      try:
        return await func(*args, **kwargs)
      except QueueStoreError:
        raise
      except (DBAPIError, ConnectionError, OSError, TimeoutError) as exc:
        classification = classify_db_failure(exc)
        logger.warning(
          "Queue store operation failed: operation=%s, category=%s, sqlstate=%s, unavailable=%s, reason=%s",
          operation,
          classification.category,
          classification.sqlstate or "none",
          classification.unavailable,
          classification.reason,
          exc_info=not classification.unavailable,
        )
        raise QueueStoreError(f"{operation} failed: {classification.reason}") from exc

    return wrapper

  return decorator
