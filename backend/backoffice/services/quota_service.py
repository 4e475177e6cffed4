# Overview: Service-layer operations for credit quotas; derives installments from credit sales and records their payment.

"""
Credit quota tracker.

WHY: Installments are not stored anywhere. They are derived on every read
from the credit-bearing entries (their schedule metadata) and from the
PAYMENT_IN entries that settled them (metadata.paidQuotaId), so there is no
second copy of the truth to drift.

DESIGN:
- Candidates: SALE paid with INTERNAL_CREDIT or MIXED, and legacy PAYMENT_IN
  entries paid with INTERNAL_CREDIT; never DRAFT or CANCELLED.
- Schedule: first non-empty of subPayments / internalCreditQuotas, else one
  quota for the whole total due on the entry's creation date.
- Quota ids: explicit id, else "<entryId>-<position>". A payment linked to
  its source entry only settles quotas of that entry; unlinked legacy
  payments settle by id alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, or_

from ..extensions import db
from ..models import (
    CashSession,
    CashSessionStatus,
    Customer,
    EntryStatus,
    EntryType,
    LedgerEntry,
    PaymentMethod,
    entry_customer_name,
)
from ..time_utils import to_iso_date, to_utc_z, utcnow
from ..validation import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    is_blank,
    money_equal,
    money_str,
    to_money,
)
from . import ledger_service
from .metadata_schemas import CREDIT_METHODS, paid_quota_id, raw_schedule, stored_quota_schedule
from .persistence import find_by_id, run_in_transaction

logger = logging.getLogger(__name__)


class QuotaStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


@dataclass(frozen=True)
class Quota:
    id: str
    source_entry_id: str
    amount: Decimal
    due_date: datetime
    quota_number: int
    total_quotas: int
    status: str
    document_number: str | None = None
    created_at: datetime | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    total_entry_amount: Decimal | None = None

    @property
    def is_open(self) -> bool:
        return self.status != QuotaStatus.PAID

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_entry_id": self.source_entry_id,
            "amount": money_str(self.amount),
            "due_date": to_iso_date(self.due_date),
            "quota_number": self.quota_number,
            "total_quotas": self.total_quotas,
            "status": self.status,
            "document_number": self.document_number,
            "created_at": to_utc_z(self.created_at),
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "total_entry_amount": money_str(self.total_entry_amount),
        }


class PaidQuotas:
    """Quota ids settled by non-cancelled PAYMENT_IN entries."""

    def __init__(self):
        self._linked: set[tuple[str, str]] = set()
        self._unlinked: set[str] = set()

    def add(self, quota_id: str, source_entry_id: str | None = None) -> None:
        if source_entry_id:
            self._linked.add((source_entry_id, quota_id))
        else:
            self._unlinked.add(quota_id)

    def is_paid(self, source_entry_id: str, quota_id: str) -> bool:
        return quota_id in self._unlinked or (source_entry_id, quota_id) in self._linked

    def __len__(self) -> int:
        return len(self._linked) + len(self._unlinked)


# =============================================================================
# Derivation
# =============================================================================

def credit_candidate_filter():
    """SQL condition selecting credit-bearing entries."""
    return and_(
        LedgerEntry.status.notin_((EntryStatus.CANCELLED, EntryStatus.DRAFT)),
        or_(
            and_(
                LedgerEntry.entry_type == EntryType.PAYMENT_IN,
                LedgerEntry.payment_method == PaymentMethod.INTERNAL_CREDIT,
            ),
            and_(
                LedgerEntry.entry_type == EntryType.SALE,
                LedgerEntry.payment_method.in_(CREDIT_METHODS),
            ),
        ),
    )


def is_credit_candidate(entry: LedgerEntry) -> bool:
    if entry.status in (EntryStatus.CANCELLED, EntryStatus.DRAFT):
        return False
    if entry.entry_type == EntryType.PAYMENT_IN:
        return entry.payment_method == PaymentMethod.INTERNAL_CREDIT
    if entry.entry_type == EntryType.SALE:
        return entry.payment_method in CREDIT_METHODS
    return False


def load_paid_quotas(customer_id: str | None = None) -> PaidQuotas:
    query = db.session.query(LedgerEntry.related_entry_id, LedgerEntry.entry_metadata).filter(
        LedgerEntry.entry_type == EntryType.PAYMENT_IN,
        LedgerEntry.status != EntryStatus.CANCELLED,
    )
    if customer_id:
        query = query.filter(LedgerEntry.customer_id == customer_id)

    paid = PaidQuotas()
    for related_entry_id, metadata in query.all():
        quota_id = paid_quota_id(metadata)
        if quota_id:
            paid.add(quota_id, related_entry_id)
    return paid


def derive_quotas(
    entry: LedgerEntry,
    paid: PaidQuotas,
    now: datetime | None = None,
    customer_name: str | None = None,
) -> list[Quota]:
    """Expand one credit-bearing entry into its quotas."""
    today = (now or utcnow()).date()
    total = Decimal(entry.total or 0)
    _, stored = raw_schedule(entry.entry_metadata)
    schedule = stored_quota_schedule(
        entry.entry_metadata, entry.created_at, label=entry.document_number or entry.id
    )

    if schedule:
        specs = [(position, spec.id, spec.amount, spec.due_date) for position, spec in schedule]
        count = len(stored)
    else:
        specs = [(1, None, total, entry.created_at)]
        count = 1

    quotas = []
    for position, explicit_id, amount, due in specs:
        quota_id = explicit_id or f"{entry.id}-{position}"
        if paid.is_paid(entry.id, quota_id):
            status = QuotaStatus.PAID
        elif due.date() < today:
            status = QuotaStatus.OVERDUE
        else:
            status = QuotaStatus.PENDING
        quotas.append(Quota(
            id=quota_id,
            source_entry_id=entry.id,
            amount=amount,
            due_date=due,
            quota_number=position,
            total_quotas=count,
            status=status,
            document_number=entry.document_number,
            created_at=entry.created_at,
            customer_id=entry.customer_id,
            customer_name=customer_name,
            total_entry_amount=total,
        ))
    return quotas


def _customer_entries(customer_id: str) -> list[tuple[LedgerEntry, Customer | None]]:
    return (
        db.session.query(LedgerEntry, Customer)
        .outerjoin(Customer, Customer.id == LedgerEntry.customer_id)
        .filter(LedgerEntry.customer_id == customer_id, credit_candidate_filter())
        .order_by(LedgerEntry.created_at.asc())
        .all()
    )


def list_customer_quotas(customer_id: str, include_paid: bool = False, now: datetime | None = None) -> list[dict]:
    if is_blank(customer_id):
        raise ValidationError("customer_id is required")
    paid = load_paid_quotas(customer_id)
    rows = []
    for entry, customer in _customer_entries(customer_id):
        for quota in derive_quotas(entry, paid, now, entry_customer_name(entry.customer_id, customer)):
            if include_paid or quota.is_open:
                rows.append(quota.to_dict())
    return rows


def pending_quotas(customer_id: str, now: datetime | None = None) -> dict:
    """Open quotas oldest due first, with the outstanding total."""
    rows = list_customer_quotas(customer_id, include_paid=False, now=now)
    rows.sort(key=lambda q: (q["due_date"] or "", q["quota_number"]))
    outstanding = sum((Decimal(q["amount"]) for q in rows), Decimal("0"))
    overdue = sum((Decimal(q["amount"]) for q in rows if q["status"] == QuotaStatus.OVERDUE), Decimal("0"))
    return {
        "customer_id": customer_id,
        "quotas": rows,
        "outstanding": money_str(outstanding),
        "overdue": money_str(overdue),
    }


# =============================================================================
# Payment
# =============================================================================

def _validate_tenders(payments) -> list[tuple[str, Decimal]]:
    if not isinstance(payments, list) or not payments:
        raise ValidationError("payments must be a non-empty list")
    errors = []
    tenders = []
    for index, raw in enumerate(payments, start=1):
        if not isinstance(raw, dict):
            errors.append(f"payment {index} must be an object")
            continue
        method = raw.get("payment_method")
        if method not in PaymentMethod.ALL:
            errors.append(f"payment {index} payment_method must be one of {', '.join(PaymentMethod.ALL)}")
        elif method == PaymentMethod.INTERNAL_CREDIT:
            errors.append(f"payment {index} cannot be paid with INTERNAL_CREDIT")
        try:
            amount = to_money(raw.get("amount"), f"payment {index} amount")
            if amount <= 0:
                errors.append(f"payment {index} amount must be positive")
        except ValidationError as exc:
            errors.extend(exc.errors)
            continue
        tenders.append((method, amount))
    if errors:
        raise ValidationError(errors)
    return tenders


def pay_quota(
    *,
    quota_id: str,
    source_entry_id: str,
    cash_session_id: str,
    user_id: str,
    payments: list[dict],
    notes: str | None = None,
) -> list[LedgerEntry]:
    """
    Settle one quota with one PAYMENT_IN per tender, all in one unit of work.

    The tenders must add up to the quota amount.
    """
    errors = []
    for name, value in (
        ("quota_id", quota_id),
        ("source_entry_id", source_entry_id),
        ("cash_session_id", cash_session_id),
        ("user_id", user_id),
    ):
        if is_blank(value):
            errors.append(f"{name} is required")
    if errors:
        raise ValidationError(errors)
    tenders = _validate_tenders(payments)

    def _op() -> list[LedgerEntry]:
        session = find_by_id(CashSession, cash_session_id, lock=True, required=True, label="Cash session")
        if session.status != CashSessionStatus.OPEN:
            raise InvalidStateError(f"Cash session {session.id} is {session.status}, not OPEN")

        source = find_by_id(LedgerEntry, source_entry_id, lock=True, required=True, label="Entry")
        if not is_credit_candidate(source):
            raise ValidationError(f"Entry {source.document_number or source.id} has no payable quotas")

        quotas = derive_quotas(source, load_paid_quotas(source.customer_id))
        quota = next((q for q in quotas if q.id == quota_id), None)
        if quota is None:
            raise NotFoundError(f"Quota {quota_id} not found on entry {source.document_number or source.id}")
        if quota.status == QuotaStatus.PAID:
            raise ConflictError(f"Quota {quota_id} is already paid")

        tendered = sum((amount for _, amount in tenders), Decimal("0"))
        if not money_equal(tendered, quota.amount):
            raise ValidationError(f"payments add up to {tendered} but quota {quota_id} is {quota.amount}")

        created = []
        for method, amount in tenders:
            created.append(ledger_service.create_entry(
                EntryType.PAYMENT_IN,
                {
                    "user_id": user_id,
                    "cash_session_id": session.id,
                    "point_of_sale_id": session.point_of_sale_id,
                    "branch_id": source.branch_id,
                    "customer_id": source.customer_id,
                    "payment_method": method,
                    "subtotal": amount,
                    "total": amount,
                    "amount_paid": amount,
                    "related_entry_id": source.id,
                    "notes": notes,
                    "metadata": {
                        "paidQuotaId": quota.id,
                        "originalEntryId": source.id,
                        "originalDocumentNumber": source.document_number,
                        "quotaNumber": quota.quota_number,
                    },
                },
                confirm=True,
            ))
        logger.info("Paid quota %s of %s with %s tender(s)", quota.id, source.document_number, len(created))
        return created

    return run_in_transaction(_op)
