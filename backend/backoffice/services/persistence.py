# Overview: Persistence collaborator over Flask-SQLAlchemy; transactions, lookups, paging and error mapping.

"""
Persistence helpers.

DESIGN:
- run_in_transaction(fn) is the single unit-of-work boundary. Nested calls
  join the outer transaction; only the outermost commits or rolls back.
- Store failures never leak as SQLAlchemy exceptions: integrity violations
  become ConflictError (DocumentNumberConflict when the colliding constraint
  is a document number, which the outer boundary retries once), anything
  else becomes PersistenceError.
- Business errors (LedgerError) pass through untouched after rollback.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import (
    ConflictError,
    DocumentNumberConflict,
    LedgerError,
    NotFoundError,
    PersistenceError,
)
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEPTH_KEY = "backoffice_uow_depth"

# Fragments of constraint names / driver messages identifying a collision.
# SQLite reports column lists, PostgreSQL reports constraint names.
_RETRYABLE_CONSTRAINTS = (
    "uq_ledger_entries_type_number",
    "ledger_entries.entry_type, ledger_entries.document_number",
    "uq_document_sequences_entry_type",
    "document_sequences.entry_type",
)
_CONFLICT_MESSAGES = (
    (
        ("uq_cash_sessions_open_pos", "cash_sessions.point_of_sale_id"),
        "Point of sale already has an open cash session",
    ),
)


def translate_integrity_error(exc: IntegrityError) -> ConflictError:
    text = str(exc.orig) if exc.orig is not None else str(exc)
    if any(fragment in text for fragment in _RETRYABLE_CONSTRAINTS):
        return DocumentNumberConflict("Document number already in use")
    for fragments, message in _CONFLICT_MESSAGES:
        if any(fragment in text for fragment in fragments):
            return ConflictError(message)
    return ConflictError("Integrity constraint violated")


def in_transaction() -> bool:
    return db.session.info.get(_DEPTH_KEY, 0) > 0


def run_in_transaction(fn: Callable[[], T], *, retry: bool = True) -> T:
    """
    Run fn inside one unit of work and return its result.

    The outermost call commits on success and rolls back on any failure.
    With retry=True the outermost call re-runs fn after lock timeouts,
    stale versions and a single document number collision.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)

    if depth > 0:
        # Joined: the outer boundary owns commit, rollback and retries
        session.info[_DEPTH_KEY] = depth + 1
        try:
            return _flush_mapped(fn)
        finally:
            session.info[_DEPTH_KEY] = depth

    def _attempt() -> T:
        session.info[_DEPTH_KEY] = 1
        try:
            result = _flush_mapped(fn)
            session.commit()
            return result
        except IntegrityError as exc:
            # Raised by commit itself; flush-time violations are mapped already
            session.rollback()
            raise translate_integrity_error(exc) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.info[_DEPTH_KEY] = 0

    try:
        if retry:
            return run_with_retry(_attempt)
        return _attempt()
    except LedgerError:
        raise
    except StaleDataError as exc:
        raise ConflictError("Record was modified concurrently") from exc
    except SQLAlchemyError as exc:
        logger.error("Unit of work failed: %s", exc)
        raise PersistenceError("Storage failure; no changes were saved") from exc


def _flush_mapped(fn: Callable[[], T]) -> T:
    """Run fn then flush, turning integrity errors into ConflictError."""
    try:
        result = fn()
        db.session.flush()
        return result
    except IntegrityError as exc:
        raise translate_integrity_error(exc) from exc


# =============================================================================
# Collaborator primitives
# =============================================================================

def insert(obj):
    """Add and flush so defaults (ids, timestamps) are populated."""
    db.session.add(obj)
    db.session.flush()
    return obj.id


def update(obj, **patch):
    for key, value in patch.items():
        setattr(obj, key, value)
    db.session.flush()
    return obj


def find_by_id(model, obj_id, *, lock: bool = False, required: bool = False, label: str | None = None):
    if obj_id is None:
        if required:
            raise NotFoundError(f"{label or model.__name__} not found")
        return None
    query = db.session.query(model).filter(model.id == obj_id)
    if lock:
        query = lock_for_update(query)
    obj = query.first()
    if obj is None and required:
        raise NotFoundError(f"{label or model.__name__} {obj_id} not found")
    return obj


def find_many(query, *, order_by=None, page: int = 1, page_size: int | None = None):
    """Return (rows, total) for one page of query; page is 1-based."""
    total = query.order_by(None).count()
    if order_by is not None:
        if isinstance(order_by, (list, tuple)):
            query = query.order_by(*order_by)
        else:
            query = query.order_by(order_by)
    if page_size is not None:
        page = max(int(page or 1), 1)
        query = query.offset((page - 1) * page_size).limit(page_size)
    return query.all(), total


def clamp_page(page, page_size, *, default: int, maximum: int) -> tuple[int, int]:
    try:
        page = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size) if page_size is not None else default
    except (TypeError, ValueError):
        page_size = default
    return max(page, 1), min(max(page_size, 1), maximum)
