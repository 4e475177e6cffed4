# Overview: Locking and retry helpers shared by every service that mutates the ledger.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import DocumentNumberConflict

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, conflict_attempts: int = 2):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) up to `attempts` times, and on a document
    number collision up to `conflict_attempts` times (one retry). The session
    is rolled back before every retry so `func` starts from a clean slate.
    """
    attempt = 0
    conflicts = 0
    while True:
        try:
            return func()
        except DocumentNumberConflict:
            db.session.rollback()
            conflicts += 1
            if conflicts >= conflict_attempts:
                raise
            logger.warning("Document number collision, retrying with a fresh number")
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            attempt += 1
            if attempt >= attempts:
                raise
            logger.warning("Retrying after concurrency failure (%s/%s): %s", attempt, attempts, exc)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
