# Overview: Retryable transaction runner; every mutating service operation goes through it.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import TransactionConflictError

"""
Transaction model (authoritative)

- A transaction body is a zero-argument callable that performs ALL of its reads
  first, then mutates ORM objects / adds rows, and returns a result value.
- The body must not have side effects outside the session (no HTTP calls, no
  cookies, no logging of success): it may run several times.
- run_transaction commits after the body returns. Any exception rolls the whole
  session back, so no partial writes are ever visible.
- Conflict signals trigger a fresh re-run of the body:
    StaleDataError   -> optimistic version_id check failed (concurrent update)
    IntegrityError   -> lost a create race (row inserted by a concurrent writer)
    OperationalError -> lock timeout / "database is locked"
- On SQLite the transaction is opened with BEGIN IMMEDIATE so writers are
  serialized and reads inside the body see the latest committed state.
"""

RETRYABLE_ERRORS = (StaleDataError, IntegrityError, OperationalError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _begin(immediate: bool) -> None:
    if immediate and db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_transaction(body, *, attempts: int | None = None, backoff_base: float | None = None,
                    immediate: bool = True, label: str = "transaction"):
    """
    Run body inside one atomic DB transaction, retrying on concurrency conflicts.

    Raises TransactionConflictError once retries are exhausted. Business errors
    raised by the body propagate unchanged after rollback.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSACTION_RETRY_BACKOFF", 0.05)

    # Start from a clean session so BEGIN IMMEDIATE is the first statement.
    # scoped_session does not proxy in_transaction(); ask the underlying session.
    if db.session().in_transaction():
        db.session.commit()

    for attempt in range(attempts):
        try:
            _begin(immediate)
            result = body()
            db.session.commit()
            return result
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "%s: giving up after %d attempts (%s)", label, attempts, type(exc).__name__
                )
                raise TransactionConflictError(
                    "The operation conflicted with concurrent changes, please retry",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.info(
                "%s: conflict on attempt %d (%s), retrying", label, attempt + 1, type(exc).__name__
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
