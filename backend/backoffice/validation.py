from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable


# Two-decimal money grid and the tolerance used by the balance invariant
CENT = Decimal("0.01")
MONEY_TOLERANCE = Decimal("0.01")
QUANTITY_GRID = Decimal("0.0001")


class LedgerError(Exception):
    """Base class for every business-rule failure raised by the services."""

    code = "error"


class ValidationError(LedgerError, ValueError):
    """
    400-level input problem.

    Carries every violation found in one pass so callers can show them all
    at once; the message is the violations joined with "; ".
    """

    code = "validation"

    def __init__(self, errors: str | Iterable[str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = [str(e) for e in errors]
        super().__init__("; ".join(self.errors))


class InvalidStateError(LedgerError):
    """Operation attempted from a status that does not allow it."""

    code = "invalid_state"


class ConflictError(LedgerError, ValueError):
    """409-level uniqueness or singleton conflict (e.g., second open session)."""

    code = "conflict"


class DocumentNumberConflict(ConflictError):
    """A document number collided with one already stored; safe to retry."""


class NotFoundError(LedgerError):
    code = "not_found"


class PersistenceError(LedgerError):
    """The store failed (driver, connectivity, lock timeout); work was rolled back."""

    code = "persistence"


# =============================================================================
# Money / quantity coercion
# =============================================================================

def to_decimal(value: Any, field: str = "value") -> Decimal:
    """
    Coerce user input to Decimal without going through binary floats.

    Booleans and non-finite values are rejected.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number") from None
    else:
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def to_money(value: Any, field: str = "amount") -> Decimal:
    return to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value: Any, field: str = "quantity") -> Decimal:
    return to_decimal(value, field).quantize(QUANTITY_GRID, rounding=ROUND_HALF_UP)


def money_equal(a: Decimal, b: Decimal) -> bool:
    return abs(Decimal(a) - Decimal(b)) <= MONEY_TOLERANCE


def money_str(value: Decimal | None) -> str | None:
    """JSON form of a money value: fixed two-decimal string."""
    if value is None:
        return None
    return str(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def quantity_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(Decimal(value).normalize(), "f")


def json_number(value: Decimal):
    """Number for JSON metadata: int when integral, float otherwise."""
    value = Decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
