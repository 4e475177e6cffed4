# Overview: Caller-facing mutations; run a service operation and report it as a structured result.

"""
Mutation boundary.

WHY: Callers (HTTP routes, CLI, other back-office screens) never see raw
exceptions from a mutation. Each action returns a MutationResult:
{success, error?, data?}, where data is plain dicts, never ORM objects.

DESIGN:
- LedgerError subclasses become failed results carrying their code, so the
  HTTP layer can pick a status without string matching.
- Anything else is logged with a traceback and reported as a generic
  failure; the session is rolled back first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any

from .extensions import db
from .services import (
    cash_session_service,
    ledger_service,
    quota_service,
    reception_service,
    reversal_service,
)
from .validation import LedgerError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    errors: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, data: Any = None) -> "MutationResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, exc: LedgerError) -> "MutationResult":
        errors = exc.errors if isinstance(exc, ValidationError) else [str(exc)]
        return cls(success=False, error=str(exc), error_code=exc.code, errors=errors)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        result = {"success": False, "error": self.error, "error_code": self.error_code}
        if len(self.errors) > 1:
            result["errors"] = self.errors
        return result


def mutation(func):
    """Wrap a service call so it always returns a MutationResult."""
    @wraps(func)
    def wrapper(*args, **kwargs) -> MutationResult:
        try:
            data = func(*args, **kwargs)
        except LedgerError as exc:
            logger.info("%s rejected: %s", func.__name__, exc)
            return MutationResult.failed(exc)
        except Exception:
            db.session.rollback()
            logger.exception("Failed to run %s", func.__name__)
            return MutationResult(success=False, error="Internal error", error_code="internal")
        return MutationResult.ok(data)
    return wrapper


# =============================================================================
# Ledger entries
# =============================================================================

@mutation
def create_entry(entry_type: str, fields: dict, confirm: bool = False) -> dict:
    entry = ledger_service.create_entry(entry_type, fields, confirm=confirm)
    return entry.to_dict(include_lines=True)


@mutation
def confirm_entry(entry_id: str) -> dict:
    return ledger_service.confirm_entry(entry_id).to_dict(include_lines=True)


@mutation
def reverse_sale(entry_id: str, *, user_id: str, reason: str, cash_session_id: str | None = None) -> dict:
    reversal = reversal_service.reverse_sale(
        entry_id, user_id=user_id, reason=reason, cash_session_id=cash_session_id
    )
    return reversal.to_dict(include_lines=True)


# =============================================================================
# Cash sessions
# =============================================================================

@mutation
def open_cash_session(*, point_of_sale_id: str, user_id: str, opening_amount, notes: str | None = None) -> dict:
    session = cash_session_service.open_session(
        point_of_sale_id=point_of_sale_id,
        user_id=user_id,
        opening_amount=opening_amount,
        notes=notes,
    )
    return session.to_dict()


@mutation
def close_cash_session(session_id: str, *, user_id: str, closing_amount, notes: str | None = None) -> dict:
    session = cash_session_service.close_session(
        session_id, user_id=user_id, closing_amount=closing_amount, notes=notes
    )
    data = session.to_dict()
    data["summary"] = cash_session_service.summarize(session.id).to_dict()
    return data


@mutation
def reconcile_cash_session(session_id: str, *, notes: str, adjusted_balance=None) -> dict:
    session = cash_session_service.reconcile_session(
        session_id, notes=notes, adjusted_balance=adjusted_balance
    )
    return session.to_dict()


# =============================================================================
# Quotas
# =============================================================================

@mutation
def pay_quota(
    *,
    quota_id: str,
    source_entry_id: str,
    cash_session_id: str,
    user_id: str,
    payments: list[dict],
    notes: str | None = None,
) -> dict:
    created = quota_service.pay_quota(
        quota_id=quota_id,
        source_entry_id=source_entry_id,
        cash_session_id=cash_session_id,
        user_id=user_id,
        payments=payments,
        notes=notes,
    )
    return {"quota_id": quota_id, "payments": [entry.to_dict() for entry in created]}


# =============================================================================
# Receptions
# =============================================================================

def _reception_data(result: dict) -> dict:
    data = {
        "reception": result["reception"].to_dict(include_lines=True),
        "obligation": result["obligation"].to_dict(),
    }
    if result.get("purchase_order") is not None:
        data["purchase_order"] = result["purchase_order"].to_dict()
    return data


@mutation
def create_purchase_order(**kwargs) -> dict:
    return reception_service.create_purchase_order(**kwargs).to_dict(include_lines=True)


@mutation
def receive_purchase_order(purchase_order_id: str, **kwargs) -> dict:
    return _reception_data(reception_service.receive_purchase_order(purchase_order_id, **kwargs))


@mutation
def create_direct_reception(**kwargs) -> dict:
    return _reception_data(reception_service.create_direct_reception(**kwargs))


@mutation
def cancel_reception(entry_id: str, *, user_id: str, reason: str) -> dict:
    reversal = reversal_service.cancel_reception(entry_id, user_id=user_id, reason=reason)
    original = ledger_service.get_entry(entry_id)
    return {"reversal": reversal.to_dict(include_lines=True), "original": original}
