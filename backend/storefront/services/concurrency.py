# Overview: Storage-transaction helpers shared by the ledger services.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PersistenceFailure, StorefrontError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write takes the
    database write lock there instead.
    """
    return query.with_for_update()


def begin_write(session: Session) -> None:
    """
    Start the write transaction up front.

    On SQLite this issues BEGIN IMMEDIATE so concurrent writers queue on the
    database lock (bounded by the busy timeout) before reading anything they
    are about to change. Other backends rely on row locks and the conditional
    updates in inventory_service, so this is a no-op there.
    """
    connection = session.connection()
    if connection.dialect.name != "sqlite":
        return
    raw = connection.connection.dbapi_connection
    if not raw.in_transaction:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def unit_of_work(session: Session, *, operation: str):
    """
    One logical transaction: commit on success, roll back on any failure.

    Domain errors propagate unchanged after the rollback. Storage errors
    are logged and surfaced as PersistenceFailure; nothing is retried here,
    callers decide whether the whole operation is safe to repeat.
    """
    try:
        yield session
        session.commit()
    except StorefrontError:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        current_app.logger.warning("%s rejected by constraint: %s", operation, exc.orig)
        raise PersistenceFailure(f"{operation} failed", details={"reason": "constraint"}) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.exception("%s failed in storage", operation)
        raise PersistenceFailure(f"{operation} failed") from exc
    except BaseException:
        session.rollback()
        raise
