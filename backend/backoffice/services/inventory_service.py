# Overview: Service-layer operations for inventory; derives stock movements from ledger entry lines.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import STOCK_SIGN, InventoryMovement, LedgerEntry


def stock_change(entry_type: str, quantity: Decimal) -> Decimal:
    """Signed stock delta a line of this entry type produces (0 for non-stock types)."""
    return STOCK_SIGN.get(entry_type, 0) * Decimal(quantity)


def apply_entry_movements(entry: LedgerEntry, *, storage_id: str | None = None) -> list[InventoryMovement]:
    """
    Append one movement per product line of a confirmed entry.

    Caller owns the unit of work. Lines without a product, and entry types
    that do not move stock, produce nothing.
    """
    storage_id = storage_id or entry.storage_id
    if not storage_id or entry.entry_type not in STOCK_SIGN:
        return []

    movements = []
    for line in entry.lines:
        if not line.product_id:
            continue
        delta = stock_change(entry.entry_type, line.quantity)
        if delta == 0:
            continue
        movement = InventoryMovement(
            entry_id=entry.id,
            line_id=line.id,
            storage_id=storage_id,
            product_id=line.product_id,
            quantity_delta=delta,
        )
        db.session.add(movement)
        movements.append(movement)
    db.session.flush()
    return movements


def reverse_entry_movements(original: LedgerEntry, reversal: LedgerEntry) -> list[InventoryMovement]:
    """Append the negation of every movement the original entry produced."""
    movements = []
    for previous in list(original.movements):
        movement = InventoryMovement(
            entry_id=reversal.id,
            storage_id=previous.storage_id,
            product_id=previous.product_id,
            quantity_delta=-previous.quantity_delta,
        )
        db.session.add(movement)
        movements.append(movement)
    db.session.flush()
    return movements


def get_stock_level(storage_id: str, product_id: str) -> Decimal:
    """Stock on hand: the sum of all deltas for the pair."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryMovement.quantity_delta), 0))
        .filter(
            InventoryMovement.storage_id == storage_id,
            InventoryMovement.product_id == product_id,
        )
        .scalar()
    )
    return Decimal(str(total or 0))


def list_movements(entry_id: str) -> list[dict]:
    rows = (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.entry_id == entry_id)
        .order_by(InventoryMovement.id)
        .all()
    )
    return [row.to_dict() for row in rows]
