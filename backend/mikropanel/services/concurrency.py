# Overview: Locking, once-only writes and commit retry shared by the service layer.

"""
Concurrency primitives

- lock_for_update: SELECT ... FOR UPDATE on engines that honor it (SQLite ignores it)
- insert_once: an INSERT guarded by the store's unique constraints; the loser
  of a race gets False instead of an exception and the outer transaction survives
- compare_and_set: a conditional UPDATE that reports whether this caller won
- commit_with_retry: commits, retrying transient lock errors with backoff
"""

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    return query.with_for_update()


def insert_once(row) -> bool:
    """Add row inside a SAVEPOINT. False when a unique constraint rejects it."""
    try:
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        return False
    return True


def compare_and_set(query, values: dict) -> bool:
    """Apply values to the rows query matches; True when exactly this caller moved a row."""
    return query.update(values, synchronize_session=False) > 0


def commit_with_retry(*, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Commit the current session.

    OperationalError (database locked) and StaleDataError are retried with
    exponential backoff; the last failure propagates.
    """
    if attempts is None:
        attempts = current_app.config.get("COMMIT_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            db.session.commit()
            return
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Commit failed (%s), retry %s/%s", exc.__class__.__name__, attempt + 1, attempts - 1)
            time.sleep(backoff_base * (2 ** attempt))
