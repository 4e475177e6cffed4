from __future__ import annotations

import uuid

from ..extensions import db
from ..time_utils import utcnow, to_utc_z
from ..validation import money_str, quantity_str


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Vocabularies
# =============================================================================

class EntryType:
    SALE = "SALE"
    SALE_RETURN = "SALE_RETURN"
    PURCHASE = "PURCHASE"
    PURCHASE_RETURN = "PURCHASE_RETURN"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    PAYMENT_IN = "PAYMENT_IN"
    PAYMENT_OUT = "PAYMENT_OUT"
    OPERATING_EXPENSE = "OPERATING_EXPENSE"

    ALL = (
        SALE,
        SALE_RETURN,
        PURCHASE,
        PURCHASE_RETURN,
        PURCHASE_ORDER,
        PAYMENT_IN,
        PAYMENT_OUT,
        OPERATING_EXPENSE,
    )
    PURCHASE_FAMILY = (PURCHASE, PURCHASE_ORDER)


class EntryStatus:
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"

    ALL = (DRAFT, CONFIRMED, PARTIALLY_RECEIVED, RECEIVED, CANCELLED)


class PaymentMethod:
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    TRANSFER = "TRANSFER"
    CHECK = "CHECK"
    CREDIT = "CREDIT"
    INTERNAL_CREDIT = "INTERNAL_CREDIT"
    MIXED = "MIXED"

    ALL = (CASH, CREDIT_CARD, DEBIT_CARD, TRANSFER, CHECK, CREDIT, INTERNAL_CREDIT, MIXED)


# Status machines. CANCELLED is terminal and only the reversal workflow
# moves an entry into it.
GENERIC_TRANSITIONS = {
    EntryStatus.DRAFT: {EntryStatus.CONFIRMED},
    EntryStatus.CONFIRMED: {EntryStatus.CANCELLED},
    EntryStatus.CANCELLED: set(),
}

PURCHASE_TRANSITIONS = {
    EntryStatus.DRAFT: {EntryStatus.CONFIRMED},
    EntryStatus.CONFIRMED: {
        EntryStatus.PARTIALLY_RECEIVED,
        EntryStatus.RECEIVED,
        EntryStatus.CANCELLED,
    },
    EntryStatus.PARTIALLY_RECEIVED: {EntryStatus.RECEIVED, EntryStatus.CANCELLED},
    EntryStatus.RECEIVED: {EntryStatus.CANCELLED},
    EntryStatus.CANCELLED: set(),
}

# Order status tracks fulfilment, so a cancelled reception can move it back
ORDER_TRANSITIONS = {
    **PURCHASE_TRANSITIONS,
    EntryStatus.PARTIALLY_RECEIVED: {EntryStatus.CONFIRMED, EntryStatus.RECEIVED, EntryStatus.CANCELLED},
    EntryStatus.RECEIVED: {EntryStatus.CONFIRMED, EntryStatus.PARTIALLY_RECEIVED, EntryStatus.CANCELLED},
}

# relatedEntryId must point at one of these types
RELATED_TYPES = {
    EntryType.PURCHASE_RETURN: {EntryType.PURCHASE},
    EntryType.SALE_RETURN: {EntryType.SALE},
    EntryType.PAYMENT_IN: {EntryType.SALE, EntryType.PAYMENT_IN},
    EntryType.PAYMENT_OUT: {EntryType.PURCHASE},
    EntryType.PURCHASE: {EntryType.PURCHASE_ORDER},
}

# Document number prefixes per type
TYPE_PREFIXES = {
    EntryType.SALE: "VTA",
    EntryType.SALE_RETURN: "DVT",
    EntryType.PURCHASE: "REC",
    EntryType.PURCHASE_RETURN: "DCP",
    EntryType.PURCHASE_ORDER: "OC",
    EntryType.PAYMENT_IN: "PIE",
    EntryType.PAYMENT_OUT: "PIS",
    EntryType.OPERATING_EXPENSE: "GOP",
}
DEFAULT_TYPE_PREFIX = "DOC"

# Sign applied to line quantities when an entry moves stock
STOCK_SIGN = {
    EntryType.PURCHASE: 1,
    EntryType.SALE_RETURN: 1,
    EntryType.SALE: -1,
    EntryType.PURCHASE_RETURN: -1,
}


def transitions_for(entry_type: str) -> dict[str, set[str]]:
    if entry_type == EntryType.PURCHASE_ORDER:
        return ORDER_TRANSITIONS
    if entry_type in EntryType.PURCHASE_FAMILY:
        return PURCHASE_TRANSITIONS
    return GENERIC_TRANSITIONS


# =============================================================================
# Tables
# =============================================================================

class LedgerEntry(db.Model):
    """
    One money- or inventory-affecting business event.

    WHY: Sales, purchases, payments, expenses, receptions and returns all share
    the same shape (totals, associations, a document number), so they live in
    one typed table. Balances are folded from these rows on demand.

    LIFECYCLE:
    - DRAFT: editable, no document number, has not moved money
    - CONFIRMED: numbered, immutable monetary fields
    - PARTIALLY_RECEIVED / RECEIVED: purchase family only
    - CANCELLED: terminal, reached through a compensating reversal entry

    Direction of money is implied by entry_type; amounts are never negative.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("entry_type", "document_number", name="uq_ledger_entries_type_number"),
        db.Index("ix_ledger_entries_type_created", "entry_type", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    entry_type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, default=EntryStatus.DRAFT, index=True)
    document_number = db.Column(db.String(64), nullable=True, index=True)

    # Money (2 dp, never negative)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(15, 2), nullable=True)
    change_amount = db.Column(db.Numeric(15, 2), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True, index=True)

    # Associations (opaque ids owned by neighbouring systems)
    branch_id = db.Column(db.String(64), nullable=True)
    point_of_sale_id = db.Column(db.String(64), nullable=True, index=True)
    cash_session_id = db.Column(db.String(36), db.ForeignKey("cash_sessions.id"), nullable=True, index=True)
    storage_id = db.Column(db.String(64), nullable=True)
    target_storage_id = db.Column(db.String(64), nullable=True)
    customer_id = db.Column(db.String(64), nullable=True, index=True)
    supplier_id = db.Column(db.String(64), nullable=True, index=True)
    user_id = db.Column(db.String(64), nullable=False)
    cost_center_id = db.Column(db.String(64), nullable=True)
    expense_category_id = db.Column(db.String(64), nullable=True)

    related_entry_id = db.Column(db.String(36), db.ForeignKey("ledger_entries.id"), nullable=True, index=True)
    external_reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # "metadata" is reserved on declarative classes; the column keeps the name
    entry_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    lines = db.relationship(
        "LedgerEntryLine",
        backref="entry",
        order_by="LedgerEntryLine.line_number",
        cascade="all, delete-orphan",
        lazy=True,
    )
    related_entry = db.relationship("LedgerEntry", remote_side=[id], foreign_keys=[related_entry_id])

    @property
    def meta(self) -> dict:
        return dict(self.entry_metadata or {})

    def can_transition_to(self, status: str) -> bool:
        return status in transitions_for(self.entry_type).get(self.status, set())

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "entry_type": self.entry_type,
            "status": self.status,
            "document_number": self.document_number,
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "tax_amount": money_str(self.tax_amount),
            "total": money_str(self.total),
            "amount_paid": money_str(self.amount_paid),
            "change_amount": money_str(self.change_amount),
            "payment_method": self.payment_method,
            "branch_id": self.branch_id,
            "point_of_sale_id": self.point_of_sale_id,
            "cash_session_id": self.cash_session_id,
            "storage_id": self.storage_id,
            "target_storage_id": self.target_storage_id,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "user_id": self.user_id,
            "cost_center_id": self.cost_center_id,
            "expense_category_id": self.expense_category_id,
            "related_entry_id": self.related_entry_id,
            "external_reference": self.external_reference,
            "notes": self.notes,
            "metadata": self.meta,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class LedgerEntryLine(db.Model):
    """Product line of an entry; entry totals are the sums of its lines."""
    __tablename__ = "ledger_entry_lines"
    __table_args__ = (
        db.UniqueConstraint("entry_id", "line_number", name="uq_ledger_entry_lines_entry_line"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    entry_id = db.Column(db.String(36), db.ForeignKey("ledger_entries.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(64), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=True)
    product_sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Numeric(15, 4), nullable=False)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(15, 2), nullable=True)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": quantity_str(self.quantity),
            "unit_price": money_str(self.unit_price),
            "unit_cost": money_str(self.unit_cost),
            "discount_amount": money_str(self.discount_amount),
            "tax_amount": money_str(self.tax_amount),
            "subtotal": money_str(self.subtotal),
            "total": money_str(self.total),
            "notes": self.notes,
        }


class DocumentSequence(db.Model):
    """
    Per-type document number counter.

    WHY: Numbers are allocated with one atomic UPDATE of this row inside the
    confirming transaction, so two concurrent confirmations can never read the
    same "last number". A unique constraint on ledger_entries is the backstop.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("entry_type", name="uq_document_sequences_entry_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "entry_type": self.entry_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
