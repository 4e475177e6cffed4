from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z
from ..validation import quantity_str


class InventoryMovement(db.Model):
    """
    Signed stock delta produced by a ledger entry line.

    WHY: Stock on hand is never stored. It is the sum of movements for a
    (storage, product) pair, so a reversal simply appends the negated deltas.

    APPEND-ONLY: rows are never updated or deleted.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_storage_product", "storage_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(db.String(36), db.ForeignKey("ledger_entries.id"), nullable=False, index=True)
    line_id = db.Column(db.String(36), db.ForeignKey("ledger_entry_lines.id"), nullable=True)
    storage_id = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.String(64), nullable=False)
    quantity_delta = db.Column(db.Numeric(15, 4), nullable=False)
    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    entry = db.relationship("LedgerEntry", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "line_id": self.line_id,
            "storage_id": self.storage_id,
            "product_id": self.product_id,
            "quantity_delta": quantity_str(self.quantity_delta),
            "occurred_at": to_utc_z(self.occurred_at),
        }
