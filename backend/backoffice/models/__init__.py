from .ledger import (
    LedgerEntry,
    LedgerEntryLine,
    DocumentSequence,
    EntryType,
    EntryStatus,
    PaymentMethod,
    RELATED_TYPES,
    TYPE_PREFIXES,
    DEFAULT_TYPE_PREFIX,
    STOCK_SIGN,
    transitions_for,
    new_id,
)
from .cash import CashSession, CashSessionStatus
from .inventory import InventoryMovement
from .parties import Customer, display_customer_name, entry_customer_name

__all__ = [
    "LedgerEntry",
    "LedgerEntryLine",
    "DocumentSequence",
    "EntryType",
    "EntryStatus",
    "PaymentMethod",
    "RELATED_TYPES",
    "TYPE_PREFIXES",
    "DEFAULT_TYPE_PREFIX",
    "STOCK_SIGN",
    "transitions_for",
    "new_id",
    "CashSession",
    "CashSessionStatus",
    "InventoryMovement",
    "Customer",
    "display_customer_name",
    "entry_customer_name",
]
