# Overview: Service-layer operations for reversals; cancels a confirmed entry through a compensating entry.

"""
Reversal workflow.

WHY: Confirmed entries are never edited or deleted. Undoing one means
writing its structural inverse (PURCHASE -> PURCHASE_RETURN, SALE ->
SALE_RETURN) with the same totals and lines, linking the two both ways,
and negating the stock movements the original produced.

DESIGN:
- All-or-nothing: the compensating entry, the CANCELLED status and the
  inverse movements are written in one unit of work.
- The original is re-read under a row lock, so two concurrent reversals
  cannot both succeed; the loser sees CANCELLED.
- The compensating entry points at the original (related_entry_id) and the
  original records the compensating entry in metadata.cancellation.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import CashSession, CashSessionStatus, EntryStatus, EntryType, LedgerEntry
from ..time_utils import utcnow
from ..validation import InvalidStateError, ValidationError, is_blank
from . import inventory_service, ledger_service, reception_service
from .metadata_schemas import CancellationInfo, ReversalInfo
from .persistence import find_by_id, run_in_transaction

logger = logging.getLogger(__name__)

REVERSAL_TYPES = {
    EntryType.PURCHASE: EntryType.PURCHASE_RETURN,
    EntryType.SALE: EntryType.SALE_RETURN,
}

REVERSAL_ORIGINS = {
    EntryType.PURCHASE: "PURCHASE_CANCELLATION",
    EntryType.SALE: "SALE_CANCELLATION",
}

COPIED_ASSOCIATIONS = (
    "branch_id",
    "point_of_sale_id",
    "storage_id",
    "target_storage_id",
    "customer_id",
    "supplier_id",
    "cost_center_id",
    "expense_category_id",
)


def _line_fields(entry: LedgerEntry) -> list[dict]:
    return [
        {
            "product_id": line.product_id,
            "product_name": line.product_name,
            "product_sku": line.product_sku,
            "quantity": line.quantity,
            "unit_price": line.unit_price,
            "unit_cost": line.unit_cost,
            "discount_amount": line.discount_amount,
            "tax_amount": line.tax_amount,
            "notes": line.notes,
        }
        for line in entry.lines
    ]


def _open_session_id(cash_session_id: str | None) -> str | None:
    """Keep the original's session only while it still accepts entries."""
    if not cash_session_id:
        return None
    session = db.session.get(CashSession, cash_session_id)
    if session is not None and session.status == CashSessionStatus.OPEN:
        return session.id
    return None


def reverse_entry(
    entry_id: str,
    *,
    user_id: str,
    reason: str,
    expected_type: str | None = None,
    cash_session_id: str | None = None,
) -> LedgerEntry:
    """
    Cancel a confirmed entry by writing its compensating entry.

    Returns the compensating entry. expected_type narrows which originals
    are acceptable (cancel_reception only reverses receptions).
    """
    errors = []
    if is_blank(entry_id):
        errors.append("entry_id is required")
    if is_blank(user_id):
        errors.append("user_id is required")
    if is_blank(reason):
        errors.append("a cancellation reason is required")
    if errors:
        raise ValidationError(errors)
    reason = reason.strip()

    def _op() -> LedgerEntry:
        original = find_by_id(LedgerEntry, entry_id, lock=True, required=True, label="Entry")
        if expected_type and original.entry_type != expected_type:
            raise ValidationError(f"Entry {original.document_number or original.id} is not a {expected_type}")
        inverse_type = REVERSAL_TYPES.get(original.entry_type)
        if inverse_type is None:
            raise ValidationError(f"{original.entry_type} entries cannot be reversed")
        if original.status == EntryStatus.DRAFT or not original.can_transition_to(EntryStatus.CANCELLED):
            raise InvalidStateError(
                f"Entry {original.document_number or original.id} is {original.status} and cannot be cancelled"
            )

        fields = {name: getattr(original, name) for name in COPIED_ASSOCIATIONS}
        fields.update(
            user_id=user_id,
            cash_session_id=cash_session_id or _open_session_id(original.cash_session_id),
            subtotal=original.subtotal,
            discount_amount=original.discount_amount,
            tax_amount=original.tax_amount,
            total=original.total,
            amount_paid=original.amount_paid,
            payment_method=original.payment_method,
            related_entry_id=original.id,
            external_reference=original.document_number,
            notes=f"Cancellation of {original.document_number}: {reason}",
            metadata=ReversalInfo(
                original_entry_id=original.id,
                original_document_number=original.document_number,
                reason=reason,
                origin=REVERSAL_ORIGINS[original.entry_type],
            ).to_metadata(),
        )
        lines = _line_fields(original)
        if lines:
            fields["lines"] = lines

        reversal = ledger_service.create_entry(inverse_type, fields, confirm=True)

        ledger_service.transition_status(original, EntryStatus.CANCELLED)
        ledger_service.merge_metadata(
            original,
            CancellationInfo(
                entry_id=reversal.id,
                document_number=reversal.document_number,
                reason=reason,
                cancelled_at=utcnow(),
            ).to_metadata(),
        )
        inventory_service.reverse_entry_movements(original, reversal)
        db.session.flush()

        logger.info(
            "Cancelled %s %s with %s %s",
            original.entry_type, original.document_number, reversal.entry_type, reversal.document_number,
        )
        return reversal

    return run_in_transaction(_op)


def cancel_reception(entry_id: str, *, user_id: str, reason: str) -> LedgerEntry:
    """
    Reverse a PURCHASE reception with a PURCHASE_RETURN.

    Unpaid supplier obligations raised by the reception are marked
    cancelled in the same unit of work, and the purchase order it was
    received against gets its fulfilment status back.
    """
    def _op() -> LedgerEntry:
        reversal = reverse_entry(entry_id, user_id=user_id, reason=reason, expected_type=EntryType.PURCHASE)
        original = db.session.get(LedgerEntry, entry_id)
        order_id = original.meta.get("purchaseOrderId") or original.related_entry_id
        if order_id:
            order = find_by_id(LedgerEntry, order_id, lock=True)
            if order is not None and order.entry_type == EntryType.PURCHASE_ORDER:
                reception_service.sync_order_status(order)
        for obligation in ledger_service.entries_for(entry_id, EntryType.PAYMENT_OUT):
            if obligation.status == EntryStatus.DRAFT:
                ledger_service.merge_metadata(obligation, {
                    "paymentStatus": "CANCELLED",
                    "cancelledByEntryId": reversal.id,
                })
        return reversal

    return run_in_transaction(_op)


def reverse_sale(
    entry_id: str,
    *,
    user_id: str,
    reason: str,
    cash_session_id: str | None = None,
) -> LedgerEntry:
    """Reverse a SALE with a SALE_RETURN, refunded in the given (or original) open session."""
    return reverse_entry(
        entry_id,
        user_id=user_id,
        reason=reason,
        expected_type=EntryType.SALE,
        cash_session_id=cash_session_id,
    )
