from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z
from ..validation import money_str
from .ledger import new_id


class CashSessionStatus:
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    RECONCILED = "RECONCILED"

    ALL = (OPEN, CLOSED, RECONCILED)


class CashSession(db.Model):
    """
    Physical cash drawer shift at a point of sale.

    WHY: Cashier accountability. The expected balance is folded from the
    ledger entries attached to the session and compared with the counted
    cash when the shift closes.

    LIFECYCLE:
    - OPEN: accepting entries; at most one per point of sale
    - CLOSED: counted, expected amount and difference frozen
    - RECONCILED: a supervisor reviewed (and optionally adjusted) the count

    Notes are append-only.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        # Singleton OPEN session per point of sale, enforced by the store
        db.Index(
            "uq_cash_sessions_open_pos",
            "point_of_sale_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    point_of_sale_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=CashSessionStatus.OPEN, index=True)

    opened_by_id = db.Column(db.String(64), nullable=False)
    closed_by_id = db.Column(db.String(64), nullable=True)

    opening_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    closing_amount = db.Column(db.Numeric(15, 2), nullable=True)
    expected_amount = db.Column(db.Numeric(15, 2), nullable=True)  # opening + in - out
    difference = db.Column(db.Numeric(15, 2), nullable=True)  # closing - expected

    opened_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    closed_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    entries = db.relationship("LedgerEntry", backref="cash_session", lazy="dynamic")
    __mapper_args__ = {"version_id_col": version_id}

    def append_note(self, text: str | None, tag: str | None = None) -> None:
        if not text or not text.strip():
            return
        line = f"{tag} {text.strip()}" if tag else text.strip()
        self.notes = f"{self.notes}\n{line}" if self.notes else line

    def to_dict(self) -> dict:
        difference = self.difference
        if difference is None and self.closing_amount is not None and self.expected_amount is not None:
            difference = self.closing_amount - self.expected_amount
        return {
            "id": self.id,
            "point_of_sale_id": self.point_of_sale_id,
            "status": self.status,
            "opened_by_id": self.opened_by_id,
            "closed_by_id": self.closed_by_id,
            "opening_amount": money_str(self.opening_amount),
            "closing_amount": money_str(self.closing_amount),
            "expected_amount": money_str(self.expected_amount),
            "difference": money_str(difference),
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "notes": self.notes,
            "version_id": self.version_id,
        }
