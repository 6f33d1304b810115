# Overview: Service-layer helpers that make each ledger operation one serializable DB unit.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import EngineError, PersistenceConflict, PersistenceTimeout
from ..extensions import db


logger = logging.getLogger(__name__)

# Driver messages that mean "someone else won, try again"
_CONFLICT_MARKERS = (
    "deadlock",
    "could not serialize",
    "serialization failure",
)

# Driver messages that mean "we waited as long as we are allowed to"
_TIMEOUT_MARKERS = (
    "database is locked",
    "database table is locked",
    "lock timeout",
    "lock wait timeout",
    "statement timeout",
    "canceling statement",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Take the database write lock up front on SQLite.

    Without it two SQLite writers can both read the same stock quantity or
    both see "no open session" before either writes. Other dialects rely on
    lock_for_update() plus optimistic version columns.
    """
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    # Pending writes already hold the lock
    if getattr(connection.connection.dbapi_connection, "in_transaction", False):
        return
    connection.execute(text("BEGIN IMMEDIATE"))


def is_timeout(exc: Exception) -> bool:
    if isinstance(exc, PoolTimeoutError):
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


def is_conflict(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower()
        return any(marker in message for marker in _CONFLICT_MARKERS)
    return False


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation as one transaction with retry on conflicts.

    - EngineError (business/input failure): rollback, re-raise, no retry.
    - Conflict (StaleDataError, deadlock/serialization failure): rollback,
      back off, retry; PersistenceConflict once attempts are exhausted.
    - Timeout (lock wait / pool checkout expired): rollback and raise
      PersistenceTimeout immediately. Retrying after a timeout could repeat
      a write that actually landed.
    - Anything else: rollback and re-raise unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF_SECONDS", 0.05)
    # Always run the operation at least once
    attempts = max(1, int(attempts))

    for attempt in range(attempts):
        try:
            return func()
        except EngineError:
            db.session.rollback()
            raise
        except (StaleDataError, OperationalError, PoolTimeoutError) as exc:
            db.session.rollback()
            if is_timeout(exc):
                raise PersistenceTimeout(
                    "Timed out waiting for the database",
                    details={"attempt": attempt + 1},
                ) from exc
            if not is_conflict(exc):
                raise
            if attempt >= attempts - 1:
                raise PersistenceConflict(
                    "Concurrent update conflict; please retry",
                    details={"attempts": attempts},
                ) from exc
            logger.warning(
                "Persistence conflict on attempt %s/%s, retrying: %s",
                attempt + 1, attempts, exc,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
