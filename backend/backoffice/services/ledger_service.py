# Overview: Service-layer operations for ledger entries; validation, creation, confirmation and status transitions.

"""
Ledger entry service.

WHY: Every money- or stock-affecting event goes through create_entry(), so
the balance invariant, required associations and link rules are enforced in
exactly one place.

DESIGN:
- Validation collects every violation and raises one ValidationError before
  anything is written.
- Confirmation (including create with confirm=True) assigns the document
  number inside the same unit of work as the status change.
- State checks are repeated under a row lock at mutation time.
- Type-specific side effects (stock, quotas, receptions) belong to the
  owning workflow, never to this module.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import (
    RELATED_TYPES,
    CashSession,
    CashSessionStatus,
    EntryStatus,
    EntryType,
    LedgerEntry,
    LedgerEntryLine,
    PaymentMethod,
)
from ..time_utils import end_of_day, start_of_day
from ..validation import (
    InvalidStateError,
    ValidationError,
    is_blank,
    money_equal,
    to_money,
    to_quantity,
)
from .concurrency import lock_for_update
from .document_service import next_document_number
from .metadata_schemas import normalize_metadata, raw_schedule, validate_metadata
from .persistence import clamp_page, find_by_id, find_many, run_in_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

MONEY_FIELDS = ("subtotal", "discount_amount", "tax_amount", "total", "amount_paid", "change_amount")
ASSOCIATION_FIELDS = (
    "branch_id",
    "point_of_sale_id",
    "cash_session_id",
    "storage_id",
    "target_storage_id",
    "customer_id",
    "supplier_id",
    "user_id",
    "cost_center_id",
    "expense_category_id",
)
OTHER_FIELDS = ("related_entry_id", "payment_method", "external_reference", "notes", "metadata", "lines")
ENTRY_FIELDS = frozenset(MONEY_FIELDS + ASSOCIATION_FIELDS + OTHER_FIELDS)

REQUIRED_ASSOCIATIONS = {
    EntryType.SALE: ("point_of_sale_id",),
    EntryType.OPERATING_EXPENSE: ("expense_category_id", "cost_center_id"),
    EntryType.PURCHASE: ("storage_id",),
    EntryType.PURCHASE_RETURN: ("storage_id",),
    EntryType.PURCHASE_ORDER: ("supplier_id",),
}

LINE_FIELDS = frozenset({
    "product_id",
    "product_name",
    "product_sku",
    "quantity",
    "unit_price",
    "unit_cost",
    "discount_amount",
    "tax_amount",
    "notes",
})

DEFAULT_LIST_PAGE_SIZE = 50


# =============================================================================
# Validation
# =============================================================================

def _money_field(fields: dict, name: str, errors: list[str]) -> Decimal | None:
    value = fields.get(name)
    if value is None:
        return None
    try:
        amount = to_money(value, name)
    except ValidationError as exc:
        errors.extend(exc.errors)
        return None
    if amount < 0:
        errors.append(f"{name} must not be negative")
    return amount


def _validate_lines(raw_lines: Any, errors: list[str]) -> list[dict]:
    if raw_lines is None:
        return []
    if not isinstance(raw_lines, list):
        errors.append("lines must be a list")
        return []

    lines = []
    for index, raw in enumerate(raw_lines, start=1):
        label = f"line {index}"
        if not isinstance(raw, dict):
            errors.append(f"{label} must be an object")
            continue
        unknown = set(raw) - LINE_FIELDS
        if unknown:
            errors.append(f"{label} has unknown fields: {', '.join(sorted(unknown))}")

        line_errors: list[str] = []
        try:
            quantity = to_quantity(raw.get("quantity"), f"{label} quantity")
            if quantity <= 0:
                line_errors.append(f"{label} quantity must be positive")
        except ValidationError as exc:
            line_errors.extend(exc.errors)
            quantity = None

        amounts = {}
        for name in ("unit_price", "unit_cost", "discount_amount", "tax_amount"):
            value = raw.get(name)
            if value is None:
                amounts[name] = None if name == "unit_cost" else ZERO
                continue
            try:
                amounts[name] = to_money(value, f"{label} {name}")
                if amounts[name] < 0:
                    line_errors.append(f"{label} {name} must not be negative")
            except ValidationError as exc:
                line_errors.extend(exc.errors)

        if line_errors:
            errors.extend(line_errors)
            continue

        subtotal = to_money(quantity * amounts["unit_price"])
        total = subtotal - amounts["discount_amount"] + amounts["tax_amount"]
        if total < 0:
            errors.append(f"{label} discount exceeds its subtotal")
            continue
        lines.append({
            "line_number": index,
            "product_id": raw.get("product_id"),
            "product_name": raw.get("product_name"),
            "product_sku": raw.get("product_sku"),
            "quantity": quantity,
            "unit_price": amounts["unit_price"],
            "unit_cost": amounts["unit_cost"],
            "discount_amount": amounts["discount_amount"],
            "tax_amount": amounts["tax_amount"],
            "subtotal": subtotal,
            "total": total,
            "notes": raw.get("notes"),
        })
    return lines


def _check_related_entry(entry_type: str, related_entry_id: str | None, errors: list[str]) -> None:
    if related_entry_id is None:
        return
    allowed = RELATED_TYPES.get(entry_type)
    if not allowed:
        errors.append(f"{entry_type} entries cannot reference another entry")
        return
    related = db.session.query(LedgerEntry.entry_type).filter(LedgerEntry.id == related_entry_id).first()
    if related is None:
        errors.append(f"related entry {related_entry_id} does not exist")
    elif related[0] not in allowed:
        errors.append(
            f"{entry_type} may only reference {', '.join(sorted(allowed))} entries, not {related[0]}"
        )


def _check_cash_session(cash_session_id: str | None, errors: list[str]) -> None:
    if cash_session_id is None:
        return
    # Locked so a concurrent close cannot slip between this check and the insert
    session = lock_for_update(
        db.session.query(CashSession).filter(CashSession.id == cash_session_id)
    ).first()
    if session is None:
        errors.append(f"cash session {cash_session_id} does not exist")
    elif session.status != CashSessionStatus.OPEN:
        errors.append(f"cash session {cash_session_id} is {session.status}, not OPEN")


def validate_entry(entry_type: str, fields: dict) -> dict:
    """
    Validate and normalize entry fields.

    Returns the cleaned field dict (Decimals, computed totals, parsed lines).
    Raises ValidationError listing every violation.
    """
    if entry_type not in EntryType.ALL:
        raise ValidationError(f"unknown entry type {entry_type!r}")
    if not isinstance(fields, dict):
        raise ValidationError("fields must be an object")

    errors: list[str] = []
    unknown = set(fields) - ENTRY_FIELDS
    if unknown:
        errors.append(f"unknown fields: {', '.join(sorted(unknown))}")

    amounts = {name: _money_field(fields, name, errors) for name in MONEY_FIELDS}
    lines = _validate_lines(fields.get("lines"), errors)

    if lines:
        sums = {
            "subtotal": sum((line["subtotal"] for line in lines), ZERO),
            "discount_amount": sum((line["discount_amount"] for line in lines), ZERO),
            "tax_amount": sum((line["tax_amount"] for line in lines), ZERO),
        }
        for name, computed in sums.items():
            given = amounts[name]
            if given is not None and not money_equal(given, computed):
                errors.append(f"{name} {given} does not match the sum of its lines ({computed})")
            amounts[name] = computed

    subtotal = amounts["subtotal"] if amounts["subtotal"] is not None else ZERO
    discount = amounts["discount_amount"] if amounts["discount_amount"] is not None else ZERO
    tax = amounts["tax_amount"] if amounts["tax_amount"] is not None else ZERO
    expected_total = subtotal - discount + tax
    total = amounts["total"]
    if total is None:
        total = expected_total
        if total < 0:
            errors.append("discount_amount exceeds subtotal plus tax")
    elif not money_equal(total, expected_total):
        errors.append(
            f"total {total} does not equal subtotal - discount_amount + tax_amount ({expected_total})"
        )

    for name in ("user_id",) + REQUIRED_ASSOCIATIONS.get(entry_type, ()):
        if is_blank(fields.get(name)):
            errors.append(f"{name} is required for {entry_type}")

    method = fields.get("payment_method")
    if method is not None and method not in PaymentMethod.ALL:
        errors.append(f"payment_method must be one of {', '.join(PaymentMethod.ALL)}")

    _check_related_entry(entry_type, fields.get("related_entry_id"), errors)
    _check_cash_session(fields.get("cash_session_id"), errors)

    metadata = fields.get("metadata")
    _, schedule = raw_schedule(metadata if isinstance(metadata, dict) else None)
    errors.extend(validate_metadata(entry_type, metadata, total if schedule else None))

    if errors:
        raise ValidationError(errors)

    clean = {name: fields.get(name) for name in ASSOCIATION_FIELDS}
    clean.update(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total=total,
        amount_paid=amounts["amount_paid"],
        change_amount=amounts["change_amount"],
        payment_method=method,
        related_entry_id=fields.get("related_entry_id"),
        external_reference=fields.get("external_reference"),
        notes=fields.get("notes"),
        entry_metadata=normalize_metadata(metadata) if metadata else None,
    )
    clean["lines"] = lines
    return clean


# =============================================================================
# Mutations
# =============================================================================

def _build_and_insert(entry_type: str, fields: dict, *, confirm: bool) -> LedgerEntry:
    clean = validate_entry(entry_type, fields)
    lines = clean.pop("lines")

    entry = LedgerEntry(entry_type=entry_type, status=EntryStatus.DRAFT, **clean)
    for line in lines:
        entry.lines.append(LedgerEntryLine(**line))

    if confirm:
        entry.status = EntryStatus.CONFIRMED
        entry.document_number = next_document_number(entry_type)

    db.session.add(entry)
    db.session.flush()
    logger.info("Created %s entry %s (%s)", entry_type, entry.id, entry.document_number or entry.status)
    return entry


def create_entry(entry_type: str, fields: dict, *, confirm: bool = False) -> LedgerEntry:
    """
    Create a ledger entry, DRAFT by default.

    With confirm=True it is inserted CONFIRMED with its document number in
    the same unit of work. Joins the caller's transaction when nested.
    """
    return run_in_transaction(lambda: _build_and_insert(entry_type, fields, confirm=confirm))


def confirm_entry(entry_id: str) -> LedgerEntry:
    """DRAFT -> CONFIRMED, assigning the document number."""
    def _op() -> LedgerEntry:
        entry = find_by_id(LedgerEntry, entry_id, lock=True, required=True, label="Entry")
        if entry.status != EntryStatus.DRAFT:
            raise InvalidStateError(
                f"Entry {entry.document_number or entry.id} is {entry.status}; only DRAFT entries can be confirmed"
            )
        if entry.cash_session_id:
            errors: list[str] = []
            _check_cash_session(entry.cash_session_id, errors)
            if errors:
                raise InvalidStateError("; ".join(errors))

        entry.document_number = next_document_number(entry.entry_type)
        entry.status = EntryStatus.CONFIRMED
        db.session.flush()
        logger.info("Confirmed %s %s", entry.entry_type, entry.document_number)
        return entry

    return run_in_transaction(_op)


def transition_status(entry: LedgerEntry, new_status: str) -> LedgerEntry:
    """Move an entry along its status machine; caller holds the unit of work."""
    if not entry.can_transition_to(new_status):
        raise InvalidStateError(
            f"{entry.entry_type} {entry.document_number or entry.id} cannot move from {entry.status} to {new_status}"
        )
    entry.status = new_status
    return entry


def merge_metadata(entry: LedgerEntry, patch: dict) -> None:
    """Assign a new bag so the JSON column is detected as changed."""
    entry.entry_metadata = normalize_metadata({**entry.meta, **patch})


# =============================================================================
# Queries
# =============================================================================

def get_entry(entry_id: str) -> dict:
    entry = find_by_id(LedgerEntry, entry_id, required=True, label="Entry")
    return entry.to_dict(include_lines=True)


def list_entries(filters: dict | None = None, page=1, page_size=None) -> dict:
    filters = filters or {}
    page, page_size = clamp_page(
        page,
        page_size,
        default=DEFAULT_LIST_PAGE_SIZE,
        maximum=current_app.config.get("AR_MAX_PAGE_SIZE", 200),
    )

    query = db.session.query(LedgerEntry)
    for name in (
        "entry_type",
        "status",
        "payment_method",
        "point_of_sale_id",
        "cash_session_id",
        "customer_id",
        "supplier_id",
    ):
        value = filters.get(name)
        if value:
            query = query.filter(getattr(LedgerEntry, name) == value)

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

    rows, total = find_many(
        query,
        order_by=[LedgerEntry.created_at.desc(), LedgerEntry.id.desc()],
        page=page,
        page_size=page_size,
    )
    return {
        "rows": [row.to_dict() for row in rows],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


def entries_for(related_entry_id: str, entry_type: str | None = None) -> list[LedgerEntry]:
    query = db.session.query(LedgerEntry).filter(LedgerEntry.related_entry_id == related_entry_id)
    if entry_type:
        query = query.filter(LedgerEntry.entry_type == entry_type)
    return query.order_by(LedgerEntry.created_at).all()


def require_entry(entry_id: str, *, lock: bool = False) -> LedgerEntry:
    return find_by_id(LedgerEntry, entry_id, lock=lock, required=True, label="Entry")
