from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z
from .ledger import new_id


WALK_IN_CUSTOMER_NAME = "Consumidor Final"
UNNAMED_CUSTOMER_NAME = "Sin Nombre"


def display_customer_name(customer) -> str:
    """Business name wins, then first + last, then a placeholder."""
    if customer is None:
        return WALK_IN_CUSTOMER_NAME
    if customer.business_name and customer.business_name.strip():
        return customer.business_name.strip()
    full = " ".join(p for p in (customer.first_name, customer.last_name) if p and p.strip())
    return full.strip() or UNNAMED_CUSTOMER_NAME


class Customer(db.Model):
    """Credit customer; only read here, for names on receivable rows."""
    __tablename__ = "customers"

    id = db.Column(db.String(64), primary_key=True, default=new_id)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    business_name = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def display_name(self) -> str:
        return display_customer_name(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "business_name": self.business_name,
            "display_name": self.display_name,
            "created_at": to_utc_z(self.created_at),
        }


def entry_customer_name(customer_id: str | None, customer) -> str:
    """Name shown for an entry: walk-in when it has no customer at all."""
    if not customer_id:
        return WALK_IN_CUSTOMER_NAME
    if customer is None:
        return UNNAMED_CUSTOMER_NAME
    return display_customer_name(customer)
