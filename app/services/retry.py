"""
Retry wrapper — the single transaction boundary for every ledger operation.

Public API
----------
run_in_transaction(session_factory, work, policy, deadline, operation) → T

Each attempt opens a fresh Session and runs the *whole* `work(session)`
inside `session.begin()`: either every statement commits or none does.
A transient failure re-runs `work` from the top on a new session; statements
from a failed attempt are never re-applied piecemeal.

Classification
--------------
  LedgerException (not-found, conflict, validation) → re-raised immediately
  IntegrityError, SQLSTATE 23503 (foreign key)      → MissingReferenceError
  any other IntegrityError                          → ConflictError
  OperationalError / invalidated connection /
  SQLSTATE 57014 (statement_timeout) /
  SQLSTATE 40001 (serialization) / 40P01 (deadlock) → transient, retried
  any other DBAPIError                              → FatalStoreError
  anything else                                     → re-raised after rollback

Deadline
--------
The deadline is checked before every attempt and before every backoff sleep.
On PostgreSQL each attempt also runs `SET LOCAL statement_timeout` with the
time left, so a single slow statement cannot outlive the deadline either.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings
from app.core.errors import (
    ConflictError,
    DeadlineExceededError,
    FatalStoreError,
    LedgerException,
    MissingReferenceError,
    TransientStoreError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_SQLSTATES = {"40001", "40P01", "57014"}
_FOREIGN_KEY_VIOLATION = "23503"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 0.05
    max_delay: float = 2.0
    multiplier: float = 2.0

    @classmethod
    def from_settings(cls, s: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=s.RETRY_MAX_ATTEMPTS,
            base_delay=s.RETRY_BASE_DELAY,
            max_delay=s.RETRY_MAX_DELAY,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before attempt `attempt + 1` (attempts are 1-based)."""
        return min(self.max_delay, self.base_delay * (self.multiplier ** (attempt - 1)))


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_missing_reference(exc: IntegrityError) -> bool:
    if _sqlstate(exc) == _FOREIGN_KEY_VIOLATION:
        return True
    return "FOREIGN KEY constraint failed" in str(exc.orig)


def apply_statement_timeout(session: Session, deadline: Optional[float]) -> Optional[int]:
    """
    Cap every statement of the current transaction at the time left before
    `deadline`. PostgreSQL only; returns the timeout in ms, or None when unset.
    """
    if deadline is None or session.get_bind().dialect.name != "postgresql":
        return None
    timeout_ms = max(1, int((deadline - time.monotonic()) * 1000))
    session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
    return timeout_ms


def is_transient(exc: DBAPIError) -> bool:
    if exc.connection_invalidated:
        return True
    if _sqlstate(exc) in _TRANSIENT_SQLSTATES:
        return True
    return isinstance(exc, OperationalError)


def run_in_transaction(
    session_factory: sessionmaker[Session],
    work: Callable[[Session], T],
    policy: RetryPolicy = RetryPolicy(),
    deadline: Optional[float] = None,
    operation: str = "transaction",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run `work` in one transaction, retrying the whole body on transient
    failures. `deadline` is a time.monotonic() instant.
    """
    attempt = 0
    while True:
        attempt += 1
        if deadline is not None and time.monotonic() >= deadline:
            raise DeadlineExceededError(operation=operation, attempts=attempt - 1)

        session = session_factory()
        try:
            with session.begin():
                apply_statement_timeout(session, deadline)
                return work(session)
        except LedgerException:
            raise
        except IntegrityError as exc:
            if is_missing_reference(exc):
                raise MissingReferenceError(operation=operation, cause=str(exc.orig)) from exc
            raise ConflictError(
                message=f"Conflicting write during {operation}.",
                details={"operation": operation, "cause": str(exc.orig)},
            ) from exc
        except DBAPIError as exc:
            if not is_transient(exc):
                logger.error("store_fatal", operation=operation, error=str(exc.orig))
                raise FatalStoreError(operation=operation, cause=str(exc.orig)) from exc
            if attempt >= policy.max_attempts:
                logger.error(
                    "store_retries_exhausted",
                    operation=operation, attempts=attempt, error=str(exc.orig),
                )
                raise TransientStoreError(
                    operation=operation, attempts=attempt, cause=str(exc.orig),
                ) from exc
            delay = policy.delay_for(attempt)
            if deadline is not None and time.monotonic() + delay >= deadline:
                raise DeadlineExceededError(operation=operation, attempts=attempt) from exc
            logger.warning(
                "store_retry",
                operation=operation, attempt=attempt, delay=delay, error=str(exc.orig),
            )
            sleep(delay)
        finally:
            session.close()
