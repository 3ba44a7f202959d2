# Overview: Service-layer operations for concurrency; transaction boundary and locking for write workflows.

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError, InternalError


# Advisory lock key guarding the global media quota aggregate (PostgreSQL)
QUOTA_LOCK_KEY = 0x51554F54

_LOCK_CONTENTION_MARKERS = (
    "database is locked",
    "could not obtain lock",
    "deadlock detected",
    "lock wait timeout",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite, acquire_write_lock() takes the database write lock instead.
    """
    return query.with_for_update()


def acquire_write_lock() -> None:
    """
    Serialize writers that check an aggregate before writing.

    - SQLite: BEGIN IMMEDIATE takes the single writer lock up front, so the
      precondition reads and the writes that follow form one unit.
    - PostgreSQL: transaction-scoped advisory lock on the quota key; released
      on commit/rollback.
    - Others: row locks from lock_for_update() only.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        raw = db.session.connection().connection.dbapi_connection
        # pysqlite opens its own transaction on the first DML; if one is
        # already open the writer lock is held (or will be) by it.
        if not getattr(raw, "in_transaction", False):
            db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        db.session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": QUOTA_LOCK_KEY})


def _is_lock_contention(exc: OperationalError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _LOCK_CONTENTION_MARKERS)


def run_atomic(func, *, serialize: bool = True):
    """
    Execute one unit of work inside a single DB transaction.

    - Commits once after func() returns.
    - Any exception rolls back everything func() wrote.
    - Optimistic-lock (StaleDataError) and lock-contention failures become
      ConflictError: the caller may retry the whole operation.
    - Other SQLAlchemy failures become InternalError.
    - Domain errors (ValidationError, NotFoundError, ...) propagate unchanged.

    No automatic retries here; retry policy belongs to the caller.
    """
    try:
        if serialize:
            acquire_write_lock()
        result = func()
        db.session.commit()
        return result
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified concurrently; retry the operation") from exc
    except OperationalError as exc:
        db.session.rollback()
        if _is_lock_contention(exc):
            raise ConflictError("Resource is locked by a concurrent operation; retry the operation") from exc
        raise InternalError("Database operation failed") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise InternalError("Database operation failed") from exc
    except Exception:
        db.session.rollback()
        raise
