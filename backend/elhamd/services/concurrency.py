# Overview: Service-layer helpers for row locking, retries and transaction boundaries.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def lock_rows_by_id(model, ids) -> dict:
    """Load and lock rows of `model` whose id is in `ids`, keyed by id."""
    ids = sorted(set(ids))
    if not ids:
        return {}
    # Sorted ids keep lock acquisition order stable across concurrent requests.
    rows = lock_for_update(
        db.session.query(model).filter(model.id.in_(ids)).order_by(model.id)
    ).all()
    return {row.id: row for row in rows}


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency failure (attempt %s/%s): %s",
                attempt + 1,
                attempts,
                exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def finish(commit: bool) -> None:
    """Commit the unit of work, or only flush when a caller owns the transaction."""
    if commit:
        db.session.commit()
    else:
        db.session.flush()
