# Overview: Service-layer operations for purchase receptions; orders, receiving with discrepancy detection, supplier obligations.

"""
Purchase reception workflow.

LIFECYCLE:
- PURCHASE_ORDER is created CONFIRMED (no stock, no cash).
- Receiving against an order creates a PURCHASE entry. It is RECEIVED when
  every ordered product arrived in the ordered quantity and
  PARTIALLY_RECEIVED otherwise; the order takes the same status.
- A PARTIALLY_RECEIVED order can be received again; expected quantities
  are then what is still outstanding after earlier, non-cancelled receptions.
- Cancelling a reception moves its order back to CONFIRMED or
  PARTIALLY_RECEIVED, so the goods can be received again.
- A direct reception (no order) is always RECEIVED.

SIDE EFFECTS (same unit of work as the PURCHASE entry):
- +quantity inventory movements into the receiving storage
- a DRAFT PAYMENT_OUT supplier obligation linked to the reception
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models import EntryStatus, EntryType, LedgerEntry, PaymentMethod
from ..time_utils import end_of_day, parse_iso_date, start_of_day, utcnow
from ..validation import InvalidStateError, ValidationError, is_blank, to_quantity
from . import inventory_service, ledger_service
from .metadata_schemas import CancellationInfo, Discrepancy, ReceptionInfo
from .persistence import clamp_page, find_by_id, find_many, run_in_transaction

logger = logging.getLogger(__name__)

RECEIVABLE_ORDER_STATUSES = (EntryStatus.CONFIRMED, EntryStatus.PARTIALLY_RECEIVED)
DEFAULT_LIST_PAGE_SIZE = 50


# =============================================================================
# Helpers
# =============================================================================

def compute_payment_due_date(
    reception_date: datetime,
    *,
    requested: date | str | None = None,
    term_days: int | None = None,
) -> date:
    """Requested date, else reception date + supplier terms; never before the reception."""
    received_on = reception_date.date() if isinstance(reception_date, datetime) else reception_date
    due = parse_iso_date(requested) if requested else None
    if due is None:
        due = received_on + timedelta(days=int(term_days or 0))
    return max(due, received_on)


def _term_days(value) -> int:
    if value is None or value == "":
        return 0
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValidationError("payment_term_days must be an integer") from None
    if days < 0:
        raise ValidationError("payment_term_days must not be negative")
    return days


def _reception_lines(lines) -> list[dict]:
    """Map received-quantity lines onto ledger line fields."""
    if not isinstance(lines, list) or not lines:
        raise ValidationError("at least one reception line is required")
    errors = []
    mapped = []
    for index, raw in enumerate(lines, start=1):
        if not isinstance(raw, dict):
            errors.append(f"line {index} must be an object")
            continue
        if is_blank(raw.get("product_id")):
            errors.append(f"line {index} product_id is required")
        quantity = raw.get("received_quantity", raw.get("quantity"))
        mapped.append({
            "product_id": raw.get("product_id"),
            "product_name": raw.get("product_name"),
            "product_sku": raw.get("product_sku"),
            "quantity": quantity,
            "unit_price": raw.get("unit_price"),
            "unit_cost": raw.get("unit_cost", raw.get("unit_price")),
            "discount_amount": raw.get("discount_amount"),
            "tax_amount": raw.get("tax_amount"),
            "notes": raw.get("notes"),
        })
    if errors:
        raise ValidationError(errors)
    return [{k: v for k, v in line.items() if v is not None} for line in mapped]


def _quantities_by_product(lines) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for line in lines:
        if line.product_id:
            totals[line.product_id] = totals.get(line.product_id, Decimal("0")) + Decimal(line.quantity)
    return totals


def _outstanding_quantities(order: LedgerEntry) -> dict[str, Decimal]:
    """Ordered quantities minus what earlier non-cancelled receptions brought in."""
    outstanding = _quantities_by_product(order.lines)
    earlier = (
        db.session.query(LedgerEntry)
        .filter(
            LedgerEntry.related_entry_id == order.id,
            LedgerEntry.entry_type == EntryType.PURCHASE,
            LedgerEntry.status != EntryStatus.CANCELLED,
        )
        .all()
    )
    for reception in earlier:
        for product_id, quantity in _quantities_by_product(reception.lines).items():
            if product_id in outstanding:
                outstanding[product_id] = max(outstanding[product_id] - quantity, Decimal("0"))
    return outstanding


def sync_order_status(order: LedgerEntry) -> LedgerEntry:
    """
    Re-derive an order's fulfilment status from its non-cancelled receptions.

    An order with nothing received goes back to CONFIRMED and one with
    quantities still outstanding to PARTIALLY_RECEIVED. Orders that are not
    in a received state are left alone.
    """
    if order.status not in (EntryStatus.PARTIALLY_RECEIVED, EntryStatus.RECEIVED):
        return order
    ordered = _quantities_by_product(order.lines)
    outstanding = _outstanding_quantities(order)
    if outstanding == ordered:
        status = EntryStatus.CONFIRMED
    elif any(quantity > 0 for quantity in outstanding.values()):
        status = EntryStatus.PARTIALLY_RECEIVED
    else:
        return order
    if status != order.status:
        logger.info("Purchase order %s back to %s", order.document_number, status)
        ledger_service.transition_status(order, status)
    return order


def find_discrepancies(
    expected: dict[str, Decimal],
    received: dict[str, Decimal],
    names: dict[str, str] | None = None,
) -> list[Discrepancy]:
    """Per product expected vs received; ordered products that never arrived count too."""
    names = names or {}
    discrepancies = []
    for product_id in list(expected) + [p for p in received if p not in expected]:
        exp = expected.get(product_id, Decimal("0"))
        rec = received.get(product_id, Decimal("0"))
        if rec != exp:
            discrepancies.append(Discrepancy(
                product_id=product_id,
                product_name=names.get(product_id),
                expected=exp,
                received=rec,
            ))
    return discrepancies


def _create_supplier_obligation(reception: LedgerEntry, info: ReceptionInfo) -> LedgerEntry:
    return ledger_service.create_entry(
        EntryType.PAYMENT_OUT,
        {
            "user_id": reception.user_id,
            "branch_id": reception.branch_id,
            "supplier_id": reception.supplier_id,
            "payment_method": PaymentMethod.CREDIT,
            "subtotal": reception.total,
            "total": reception.total,
            "related_entry_id": reception.id,
            "external_reference": reception.external_reference,
            "notes": f"Supplier payment for {reception.document_number}",
            "metadata": {
                "origin": "DIRECT_RECEPTION" if info.is_direct else "PURCHASE_RECEPTION",
                "receptionEntryId": reception.id,
                "receptionDocumentNumber": reception.document_number,
                "paymentDueDate": info.payment_due_date,
                "paymentTermDays": info.payment_term_days,
                "paymentStatus": "PENDING",
                "receptionTotal": reception.total,
            },
        },
        confirm=False,
    )


def _record_reception(fields: dict, info: ReceptionInfo) -> dict:
    """Insert the PURCHASE entry, classify it, move stock and raise the obligation."""
    fields = dict(fields)
    fields["metadata"] = {**(fields.get("metadata") or {}), **info.to_metadata()}
    reception = ledger_service.create_entry(EntryType.PURCHASE, fields, confirm=True)

    status = EntryStatus.PARTIALLY_RECEIVED if info.has_discrepancies else EntryStatus.RECEIVED
    ledger_service.transition_status(reception, status)

    movements = inventory_service.apply_entry_movements(reception)
    obligation = _create_supplier_obligation(reception, info)
    db.session.flush()

    logger.info(
        "Received %s (%s) with %s movement(s); obligation %s",
        reception.document_number, reception.status, len(movements), obligation.id,
    )
    return {"reception": reception, "obligation": obligation}


# =============================================================================
# Operations
# =============================================================================

def create_purchase_order(
    *,
    supplier_id: str,
    storage_id: str | None,
    user_id: str,
    lines: list[dict],
    branch_id: str | None = None,
    external_reference: str | None = None,
    notes: str | None = None,
    payment_term_days=None,
    expected_date: str | None = None,
) -> LedgerEntry:
    """Record a confirmed purchase order; moves neither stock nor cash."""
    if not isinstance(lines, list) or not lines:
        raise ValidationError("at least one order line is required")
    metadata = {"paymentTermDays": _term_days(payment_term_days)}
    if expected_date:
        metadata["expectedDate"] = expected_date
    fields = {
        "supplier_id": supplier_id,
        "storage_id": storage_id,
        "user_id": user_id,
        "branch_id": branch_id,
        "external_reference": external_reference,
        "notes": notes,
        "payment_method": PaymentMethod.CREDIT,
        "lines": lines,
        "metadata": metadata,
    }
    return ledger_service.create_entry(
        EntryType.PURCHASE_ORDER,
        {k: v for k, v in fields.items() if v is not None},
        confirm=True,
    )


def receive_purchase_order(
    purchase_order_id: str,
    *,
    user_id: str,
    lines: list[dict],
    storage_id: str | None = None,
    external_reference: str | None = None,
    notes: str | None = None,
    payment_due_date: str | None = None,
    payment_term_days=None,
) -> dict:
    """
    Receive goods against a purchase order.

    Returns {"reception", "obligation", "purchase_order"} entries.
    """
    mapped = _reception_lines(lines)
    term_override = _term_days(payment_term_days) if payment_term_days is not None else None
    if is_blank(user_id):
        raise ValidationError("user_id is required")

    def _op() -> dict:
        order = find_by_id(LedgerEntry, purchase_order_id, lock=True, required=True, label="Purchase order")
        if order.entry_type != EntryType.PURCHASE_ORDER:
            raise ValidationError(f"Entry {order.document_number or order.id} is not a purchase order")
        if order.status not in RECEIVABLE_ORDER_STATUSES:
            raise InvalidStateError(
                f"Purchase order {order.document_number} is {order.status} and cannot be received"
            )

        expected = _outstanding_quantities(order)
        received: dict[str, Decimal] = {}
        arrived = []
        for index, line in enumerate(mapped, start=1):
            qty = to_quantity(line.get("quantity"), f"line {index} received_quantity")
            if qty < 0:
                raise ValidationError(f"line {index} received_quantity must not be negative")
            received[line["product_id"]] = received.get(line["product_id"], Decimal("0")) + qty
            # Zero lines only document a missing product
            if qty > 0:
                arrived.append(line)
        if not arrived:
            raise ValidationError("nothing was received")
        names = {line.product_id: line.product_name for line in order.lines if line.product_id}

        now = utcnow()
        term_days = term_override if term_override is not None else (order.meta.get("paymentTermDays") or 0)
        info = ReceptionInfo(
            reception_date=now,
            is_direct=False,
            purchase_order_id=order.id,
            purchase_order_number=order.document_number,
            expected_quantities=expected,
            received_quantities=received,
            discrepancies=find_discrepancies(expected, received, names),
            payment_due_date=compute_payment_due_date(now, requested=payment_due_date, term_days=term_days),
            payment_term_days=term_days,
        )
        fields = {
            "user_id": user_id,
            "supplier_id": order.supplier_id,
            "storage_id": storage_id or order.storage_id,
            "branch_id": order.branch_id,
            "payment_method": PaymentMethod.CREDIT,
            "related_entry_id": order.id,
            "external_reference": external_reference,
            "notes": notes,
            "lines": arrived,
        }
        result = _record_reception({k: v for k, v in fields.items() if v is not None}, info)

        reception = result["reception"]
        if reception.status != order.status:
            ledger_service.transition_status(order, reception.status)
        ledger_service.merge_metadata(order, {
            "lastReceptionEntryId": reception.id,
            "lastReceptionDocumentNumber": reception.document_number,
            "lastReceptionAt": now,
            "lastReceptionHasDiscrepancies": info.has_discrepancies,
        })
        result["purchase_order"] = order
        return result

    return run_in_transaction(_op)


def create_direct_reception(
    *,
    supplier_id: str,
    storage_id: str,
    user_id: str,
    lines: list[dict],
    branch_id: str | None = None,
    external_reference: str | None = None,
    notes: str | None = None,
    payment_due_date: str | None = None,
    payment_term_days=None,
) -> dict:
    """Receive goods without an order; always RECEIVED."""
    mapped = _reception_lines(lines)
    errors = []
    if is_blank(supplier_id):
        errors.append("supplier_id is required for a direct reception")
    if is_blank(storage_id):
        errors.append("storage_id is required for a direct reception")
    if errors:
        raise ValidationError(errors)
    term_days = _term_days(payment_term_days)

    def _op() -> dict:
        now = utcnow()
        info = ReceptionInfo(
            reception_date=now,
            is_direct=True,
            payment_due_date=compute_payment_due_date(now, requested=payment_due_date, term_days=term_days),
            payment_term_days=term_days,
        )
        fields = {
            "user_id": user_id,
            "supplier_id": supplier_id,
            "storage_id": storage_id,
            "branch_id": branch_id,
            "payment_method": PaymentMethod.CREDIT,
            "external_reference": external_reference,
            "notes": notes,
            "lines": mapped,
        }
        return _record_reception({k: v for k, v in fields.items() if v is not None}, info)

    return run_in_transaction(_op)


# =============================================================================
# Queries
# =============================================================================

def _reception_row(entry: LedgerEntry, linked: LedgerEntry | None) -> dict:
    meta = entry.meta
    row = entry.to_dict()
    row["line_count"] = len(entry.lines)
    if entry.entry_type == EntryType.PURCHASE:
        info = ReceptionInfo.from_metadata(meta)
        cancellation = CancellationInfo.from_metadata(meta)
        row.update(
            purchase_order_number=info.purchase_order_number,
            is_direct=info.is_direct,
            has_discrepancies=info.has_discrepancies,
            cancels_document_number=None,
            cancelled_by_document_number=cancellation.document_number if cancellation else None,
            cancellation_reason=cancellation.reason if cancellation else None,
        )
    else:
        row.update(
            purchase_order_number=linked.meta.get("purchaseOrderNumber") if linked else None,
            is_direct=bool(linked.meta.get("isDirect")) if linked else False,
            has_discrepancies=False,
            cancels_document_number=linked.document_number if linked else meta.get("originalDocumentNumber"),
            cancelled_by_document_number=None,
            cancellation_reason=meta.get("cancellationReason"),
        )
    return row


def list_receptions(filters: dict | None = None, page=1, page_size=None) -> dict:
    """PURCHASE and PURCHASE_RETURN rows with their cancellation links resolved."""
    filters = filters or {}
    page, page_size = clamp_page(
        page,
        page_size,
        default=DEFAULT_LIST_PAGE_SIZE,
        maximum=current_app.config.get("AR_MAX_PAGE_SIZE", 200),
    )

    linked_entry = aliased(LedgerEntry)
    query = (
        db.session.query(LedgerEntry, linked_entry)
        .outerjoin(linked_entry, linked_entry.id == LedgerEntry.related_entry_id)
        .filter(LedgerEntry.entry_type.in_((EntryType.PURCHASE, EntryType.PURCHASE_RETURN)))
    )
    if filters.get("entry_type"):
        query = query.filter(LedgerEntry.entry_type == filters["entry_type"])
    if filters.get("status"):
        query = query.filter(LedgerEntry.status == filters["status"])
    if filters.get("supplier_id"):
        query = query.filter(LedgerEntry.supplier_id == filters["supplier_id"])
    if filters.get("storage_id"):
        query = query.filter(LedgerEntry.storage_id == filters["storage_id"])
    date_from = start_of_day(filters.get("date_from"))
    if date_from is not None:
        query = query.filter(LedgerEntry.created_at >= date_from)
    date_to = end_of_day(filters.get("date_to"))
    if date_to is not None:
        query = query.filter(LedgerEntry.created_at <= date_to)
    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            LedgerEntry.document_number.ilike(pattern),
            LedgerEntry.external_reference.ilike(pattern),
        ))

    results, total = find_many(
        query,
        order_by=[LedgerEntry.created_at.desc(), LedgerEntry.id.desc()],
        page=page,
        page_size=page_size,
    )
    return {
        "rows": [_reception_row(entry, linked) for entry, linked in results],
        "total": total,
        "page": page,
        "page_size": page_size,
    }
