# Overview: Service-layer operations for cash sessions; open, summarize, close and reconcile drawer shifts.

"""
Cash session lifecycle.

LIFECYCLE: OPEN -> CLOSED -> RECONCILED

DESIGN:
- At most one OPEN session per point of sale: checked before insert and
  enforced by a partial unique index, both surfaced as ConflictError.
- The expected balance is always folded from the ledger, never cached:
  expected = opening + (SALE + PAYMENT_IN) - (SALE_RETURN + PAYMENT_OUT).
  DRAFT entries have not moved money and are left out.
- close() and reconcile() re-read the session under a row lock so a
  concurrent close cannot overwrite the first one's figures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import CashSession, CashSessionStatus, EntryStatus, EntryType, LedgerEntry
from ..time_utils import end_of_day, start_of_day, utcnow
from ..validation import (
    ConflictError,
    InvalidStateError,
    ValidationError,
    is_blank,
    money_str,
    to_money,
)
from .persistence import clamp_page, find_by_id, find_many, run_in_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

CASH_IN_TYPES = (EntryType.SALE, EntryType.PAYMENT_IN)
CASH_OUT_TYPES = (EntryType.SALE_RETURN, EntryType.PAYMENT_OUT)
RECONCILIATION_TAG = "[RECONCILIATION]"

DEFAULT_LIST_PAGE_SIZE = 50


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    opening_amount: Decimal
    cash_in: Decimal
    cash_out: Decimal
    expected_balance: Decimal
    total_sales: Decimal
    total_returns: Decimal
    transaction_count: int

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "opening_amount": money_str(self.opening_amount),
            "cash_in": money_str(self.cash_in),
            "cash_out": money_str(self.cash_out),
            "expected_balance": money_str(self.expected_balance),
            "total_sales": money_str(self.total_sales),
            "total_returns": money_str(self.total_returns),
            "transaction_count": self.transaction_count,
        }


def _non_negative(value, field: str) -> Decimal:
    if value is None:
        raise ValidationError(f"{field} is required")
    amount = to_money(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must not be negative")
    return amount


def _require_session(session_id: str, *, lock: bool = False) -> CashSession:
    return find_by_id(CashSession, session_id, lock=lock, required=True, label="Cash session")


# =============================================================================
# Operations
# =============================================================================

def open_session(
    *,
    point_of_sale_id: str,
    user_id: str,
    opening_amount,
    notes: str | None = None,
) -> CashSession:
    errors = []
    if is_blank(point_of_sale_id):
        errors.append("point_of_sale_id is required")
    if is_blank(user_id):
        errors.append("user_id is required")
    try:
        amount = _non_negative(opening_amount, "opening_amount")
    except ValidationError as exc:
        errors.extend(exc.errors)
    if errors:
        raise ValidationError(errors)

    def _op() -> CashSession:
        existing = (
            db.session.query(CashSession)
            .filter_by(point_of_sale_id=point_of_sale_id, status=CashSessionStatus.OPEN)
            .first()
        )
        if existing:
            raise ConflictError(f"Point of sale {point_of_sale_id} already has an open cash session")

        session = CashSession(
            point_of_sale_id=point_of_sale_id,
            opened_by_id=user_id,
            opening_amount=amount,
            status=CashSessionStatus.OPEN,
            opened_at=utcnow(),
        )
        session.append_note(notes)
        db.session.add(session)
        db.session.flush()
        logger.info("Opened cash session %s at %s", session.id, point_of_sale_id)
        return session

    return run_in_transaction(_op)


def summarize(session_id: str) -> SessionSummary:
    """Deterministic fold over the session's non-draft entries."""
    session = _require_session(session_id)
    rows = (
        db.session.query(LedgerEntry.entry_type, LedgerEntry.total)
        .filter(
            LedgerEntry.cash_session_id == session.id,
            LedgerEntry.status != EntryStatus.DRAFT,
        )
        .all()
    )

    cash_in = cash_out = sales = returns = ZERO
    for entry_type, total in rows:
        total = Decimal(total or 0)
        if entry_type in CASH_IN_TYPES:
            cash_in += total
        elif entry_type in CASH_OUT_TYPES:
            cash_out += total
        if entry_type == EntryType.SALE:
            sales += total
        elif entry_type == EntryType.SALE_RETURN:
            returns += total

    opening = Decimal(session.opening_amount or 0)
    return SessionSummary(
        session_id=session.id,
        opening_amount=opening,
        cash_in=cash_in,
        cash_out=cash_out,
        expected_balance=opening + cash_in - cash_out,
        total_sales=sales,
        total_returns=returns,
        transaction_count=len(rows),
    )


def close_session(
    session_id: str,
    *,
    user_id: str,
    closing_amount,
    notes: str | None = None,
) -> CashSession:
    """
    OPEN -> CLOSED.

    Freezes expected_amount and difference (closing - expected). A second
    close attempt fails with InvalidStateError and changes nothing.
    """
    if is_blank(user_id):
        raise ValidationError("user_id is required")
    amount = _non_negative(closing_amount, "closing_amount")

    def _op() -> CashSession:
        session = _require_session(session_id, lock=True)
        if session.status != CashSessionStatus.OPEN:
            raise InvalidStateError(f"Cash session {session.id} is {session.status}; only OPEN sessions can be closed")

        summary = summarize(session.id)
        session.expected_amount = summary.expected_balance
        session.closing_amount = amount
        session.difference = amount - summary.expected_balance
        session.closed_by_id = user_id
        session.closed_at = utcnow()
        session.status = CashSessionStatus.CLOSED
        session.append_note(notes)
        db.session.flush()
        logger.info(
            "Closed cash session %s: expected %s, counted %s, difference %s",
            session.id, session.expected_amount, session.closing_amount, session.difference,
        )
        return session

    return run_in_transaction(_op)


def reconcile_session(
    session_id: str,
    *,
    notes: str,
    adjusted_balance=None,
) -> CashSession:
    """
    CLOSED -> RECONCILED.

    An adjusted balance replaces the counted amount and the difference is
    recomputed against the expected amount frozen at close. Notes are
    required and always land under the reconciliation marker.
    """
    if is_blank(notes):
        raise ValidationError("reconciliation notes are required")
    adjusted = _non_negative(adjusted_balance, "adjusted_balance") if adjusted_balance is not None else None

    def _op() -> CashSession:
        session = _require_session(session_id, lock=True)
        if session.status != CashSessionStatus.CLOSED:
            raise InvalidStateError(
                f"Cash session {session.id} is {session.status}; only CLOSED sessions can be reconciled"
            )
        if adjusted is not None:
            session.closing_amount = adjusted
            session.difference = adjusted - Decimal(session.expected_amount or 0)
        session.append_note(notes, tag=RECONCILIATION_TAG)
        session.status = CashSessionStatus.RECONCILED
        db.session.flush()
        logger.info("Reconciled cash session %s", session.id)
        return session

    return run_in_transaction(_op)


# =============================================================================
# Queries
# =============================================================================

def get_active_session(point_of_sale_id: str) -> dict | None:
    session = (
        db.session.query(CashSession)
        .filter_by(point_of_sale_id=point_of_sale_id, status=CashSessionStatus.OPEN)
        .first()
    )
    return session.to_dict() if session else None


def get_session(session_id: str) -> dict:
    session = _require_session(session_id)
    data = session.to_dict()
    data["summary"] = summarize(session.id).to_dict()
    return data


def list_sessions(filters: dict | None = None, page=1, page_size=None) -> dict:
    filters = filters or {}
    page, page_size = clamp_page(
        page,
        page_size,
        default=DEFAULT_LIST_PAGE_SIZE,
        maximum=current_app.config.get("AR_MAX_PAGE_SIZE", 200),
    )

    query = db.session.query(CashSession)
    if filters.get("point_of_sale_id"):
        query = query.filter(CashSession.point_of_sale_id == filters["point_of_sale_id"])
    if filters.get("status"):
        query = query.filter(CashSession.status == filters["status"])
    date_from = start_of_day(filters.get("date_from"))
    if date_from is not None:
        query = query.filter(CashSession.opened_at >= date_from)
    date_to = end_of_day(filters.get("date_to"))
    if date_to is not None:
        query = query.filter(CashSession.opened_at <= date_to)

    rows, total = find_many(query, order_by=CashSession.opened_at.desc(), page=page, page_size=page_size)
    return {
        "rows": [row.to_dict() for row in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
    }
