# Overview: Typed payloads for the ledger entry metadata bag; parsed and serialized at the storage boundary.

"""
Entry metadata payloads.

WHY: The metadata column is a free-form JSON bag, but a handful of keys are
an on-disk contract (quota schedules, reception facts, cancellation facts,
quota payment links). Workflows build and read them through these
dataclasses so a misspelt key fails loudly instead of silently producing
an empty schedule.

DESIGN:
- from_metadata() tolerates absent keys and returns defaults
- to_metadata() only emits the keys it owns; callers merge into the bag
- normalize_metadata() makes any bag JSON-safe (Decimal, date, datetime)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from ..models import EntryType, PaymentMethod
from ..time_utils import parse_iso_datetime, to_iso_date, to_utc_z
from ..validation import ValidationError, json_number, to_money, to_quantity

logger = logging.getLogger(__name__)

SCHEDULE_KEYS = ("subPayments", "internalCreditQuotas")
QUOTA_PAYMENT_KEY = "paidQuotaId"
CREDIT_METHODS = (PaymentMethod.INTERNAL_CREDIT, PaymentMethod.MIXED)


def normalize_metadata(value: Any) -> Any:
    """Return a JSON-safe deep copy of a metadata value."""
    if isinstance(value, dict):
        return {str(k): normalize_metadata(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_metadata(v) for v in value]
    if isinstance(value, Decimal):
        return json_number(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


# =============================================================================
# Quota schedule
# =============================================================================

@dataclass(frozen=True)
class QuotaSpec:
    """One scheduled installment as stored in subPayments/internalCreditQuotas."""
    amount: Decimal
    due_date: datetime
    id: str | None = None

    @classmethod
    def from_json(cls, raw: Any, position: int = 1) -> "QuotaSpec":
        if not isinstance(raw, dict):
            raise ValidationError(f"quota {position} must be an object")
        errors = []
        amount = None
        due = None
        try:
            amount = to_money(raw.get("amount"), f"quota {position} amount")
            if amount <= 0:
                errors.append(f"quota {position} amount must be positive")
        except ValidationError as exc:
            errors.extend(exc.errors)
        try:
            due = parse_iso_datetime(raw.get("dueDate"))
            if due is None:
                errors.append(f"quota {position} dueDate is required")
        except (TypeError, ValueError):
            errors.append(f"quota {position} dueDate is not a valid date")
        quota_id = raw.get("id")
        if quota_id is not None and not isinstance(quota_id, (str, int)):
            errors.append(f"quota {position} id must be a string")
        if errors:
            raise ValidationError(errors)
        return cls(amount=amount, due_date=due, id=str(quota_id) if quota_id is not None else None)

    def to_json(self) -> dict:
        data = {"amount": json_number(self.amount), "dueDate": to_iso_date(self.due_date)}
        if self.id is not None:
            data["id"] = self.id
        return data


def raw_schedule(metadata: dict | None) -> tuple[str | None, list]:
    """First non-empty schedule array and the key it came from."""
    metadata = metadata or {}
    for key in SCHEDULE_KEYS:
        items = metadata.get(key)
        if isinstance(items, list) and items:
            return key, items
    return None, []


def stored_quota_schedule(
    metadata: dict | None,
    default_due: datetime,
    label: str = "",
) -> list[tuple[int, QuotaSpec]]:
    """
    Read-side schedule: (position, spec) pairs from a stored bag.

    Rows written before validation existed may carry a missing dueDate or a
    junk amount. A bad dueDate falls back to default_due; an unreadable
    amount drops that item. Both are logged so the row can be repaired.
    """
    _, items = raw_schedule(metadata)
    specs = []
    for position, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            logger.warning("Skipping quota %s of %s: not an object", position, label)
            continue
        try:
            amount = to_money(raw.get("amount"), "amount")
        except ValidationError:
            logger.warning("Skipping quota %s of %s: unreadable amount %r", position, label, raw.get("amount"))
            continue
        try:
            due = parse_iso_datetime(raw.get("dueDate"))
        except (TypeError, ValueError):
            due = None
        if due is None:
            logger.warning("Quota %s of %s has no usable dueDate, using %s", position, label, default_due)
            due = default_due
        quota_id = raw.get("id")
        specs.append((position, QuotaSpec(
            amount=amount,
            due_date=due,
            id=str(quota_id) if quota_id not in (None, "") else None,
        )))
    return specs


def paid_quota_id(metadata: dict | None) -> str | None:
    value = (metadata or {}).get(QUOTA_PAYMENT_KEY)
    return str(value) if value not in (None, "") else None


# =============================================================================
# Reception / cancellation payloads
# =============================================================================

@dataclass
class Discrepancy:
    product_id: str
    expected: Decimal
    received: Decimal
    product_name: str | None = None

    @property
    def difference(self) -> Decimal:
        return self.received - self.expected

    def to_json(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "expected": json_number(self.expected),
            "received": json_number(self.received),
            "difference": json_number(self.difference),
        }


@dataclass
class ReceptionInfo:
    """Facts a PURCHASE entry records about how it was received."""
    reception_date: datetime
    is_direct: bool = False
    purchase_order_id: str | None = None
    purchase_order_number: str | None = None
    expected_quantities: dict[str, Decimal] = field(default_factory=dict)
    received_quantities: dict[str, Decimal] = field(default_factory=dict)
    discrepancies: list[Discrepancy] = field(default_factory=list)
    payment_due_date: date | None = None
    payment_term_days: int | None = None

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.discrepancies)

    def to_metadata(self) -> dict:
        return {
            "isDirect": self.is_direct,
            "purchaseOrderId": self.purchase_order_id,
            "purchaseOrderNumber": self.purchase_order_number,
            "expectedQuantities": {k: json_number(v) for k, v in self.expected_quantities.items()},
            "receivedQuantities": {k: json_number(v) for k, v in self.received_quantities.items()},
            "discrepancies": [d.to_json() for d in self.discrepancies],
            "hasDiscrepancies": self.has_discrepancies,
            "isPartialReception": self.has_discrepancies,
            "receptionDate": to_utc_z(self.reception_date),
            "paymentDueDate": to_iso_date(self.payment_due_date),
            "paymentTermDays": self.payment_term_days,
        }

    @classmethod
    def from_metadata(cls, metadata: dict | None) -> "ReceptionInfo":
        metadata = metadata or {}
        discrepancies = [
            Discrepancy(
                product_id=str(d.get("productId")),
                product_name=d.get("productName"),
                expected=to_quantity(d.get("expected", 0)),
                received=to_quantity(d.get("received", 0)),
            )
            for d in metadata.get("discrepancies") or []
            if isinstance(d, dict)
        ]
        due = metadata.get("paymentDueDate")
        return cls(
            reception_date=parse_iso_datetime(metadata.get("receptionDate")) or datetime.min,
            is_direct=bool(metadata.get("isDirect", False)),
            purchase_order_id=metadata.get("purchaseOrderId"),
            purchase_order_number=metadata.get("purchaseOrderNumber"),
            expected_quantities={k: to_quantity(v) for k, v in (metadata.get("expectedQuantities") or {}).items()},
            received_quantities={k: to_quantity(v) for k, v in (metadata.get("receivedQuantities") or {}).items()},
            discrepancies=discrepancies,
            payment_due_date=parse_iso_datetime(due).date() if due else None,
            payment_term_days=metadata.get("paymentTermDays"),
        )


@dataclass
class CancellationInfo:
    """Written on the original entry when a reversal cancels it."""
    entry_id: str
    document_number: str | None
    reason: str
    cancelled_at: datetime

    def to_metadata(self) -> dict:
        return {
            "cancellation": {
                "entryId": self.entry_id,
                "documentNumber": self.document_number,
                "reason": self.reason,
                "cancelledAt": to_utc_z(self.cancelled_at),
            }
        }

    @classmethod
    def from_metadata(cls, metadata: dict | None) -> "CancellationInfo | None":
        raw = (metadata or {}).get("cancellation")
        if not isinstance(raw, dict):
            return None
        return cls(
            entry_id=raw.get("entryId"),
            document_number=raw.get("documentNumber"),
            reason=raw.get("reason") or "",
            cancelled_at=parse_iso_datetime(raw.get("cancelledAt")),
        )


@dataclass
class ReversalInfo:
    """Written on the compensating entry that reverses an original."""
    original_entry_id: str
    original_document_number: str | None
    reason: str
    origin: str

    def to_metadata(self) -> dict:
        return {
            "origin": self.origin,
            "originalEntryId": self.original_entry_id,
            "originalDocumentNumber": self.original_document_number,
            "cancellationReason": self.reason,
        }


# =============================================================================
# Validation entry point
# =============================================================================

def validate_metadata(entry_type: str, metadata: Any, total: Decimal | None = None) -> list[str]:
    """Return every problem found in a metadata bag for the given entry type."""
    if metadata is None:
        return []
    if not isinstance(metadata, dict):
        return ["metadata must be an object"]

    errors: list[str] = []
    key, items = raw_schedule(metadata)
    for other in SCHEDULE_KEYS:
        value = metadata.get(other)
        if value is not None and not isinstance(value, list):
            errors.append(f"metadata.{other} must be a list")

    if items:
        if entry_type not in (EntryType.SALE, EntryType.PAYMENT_IN):
            errors.append(f"metadata.{key} is only allowed on SALE and PAYMENT_IN entries")
        specs = []
        for i, item in enumerate(items):
            try:
                specs.append(QuotaSpec.from_json(item, i + 1))
            except ValidationError as exc:
                errors.extend(f"metadata.{key}: {e}" for e in exc.errors)
        ids = [s.id for s in specs if s.id is not None]
        if len(ids) != len(set(ids)):
            errors.append(f"metadata.{key} quota ids must be unique")
        if total is not None and len(specs) == len(items):
            scheduled = sum((s.amount for s in specs), Decimal("0"))
            if abs(scheduled - total) > Decimal("0.01"):
                errors.append(f"metadata.{key} amounts ({scheduled}) must add up to total ({total})")

    if QUOTA_PAYMENT_KEY in metadata and entry_type != EntryType.PAYMENT_IN:
        errors.append(f"metadata.{QUOTA_PAYMENT_KEY} is only allowed on PAYMENT_IN entries")

    if "hasDiscrepancies" in metadata and not isinstance(metadata["hasDiscrepancies"], bool):
        errors.append("metadata.hasDiscrepancies must be a boolean")

    reason = metadata.get("cancellationReason")
    if reason is not None and not isinstance(reason, str):
        errors.append("metadata.cancellationReason must be a string")

    return errors
