# Overview: Flask API routes for ledger entries; parses input and returns JSON responses.

# backend/backoffice/routes/ledger.py
"""
Ledger Entry API Routes

DESIGN:
- POST creates an entry (DRAFT unless "confirm": true)
- Confirmation is its own endpoint; it assigns the document number
- Cancelling a sale goes through a compensating SALE_RETURN, never an edit
"""

from flask import Blueprint, current_app, jsonify, request

from .. import actions
from ..services import inventory_service, ledger_service
from ..validation import LedgerError
from .common import error_response, json_body, list_filters, result_response

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")

ENTRY_FILTERS = (
    "entry_type",
    "status",
    "payment_method",
    "point_of_sale_id",
    "cash_session_id",
    "customer_id",
    "supplier_id",
    "date_from",
    "date_to",
    "search",
)


@ledger_bp.post("/entries")
def create_entry_route():
    """
    Create a ledger entry.

    Request body:
    {
        "entry_type": "SALE",
        "confirm": true,
        "fields": {"user_id": "...", "point_of_sale_id": "...", "total": "100.00", ...}
    }
    """
    data = json_body()
    entry_type = data.get("entry_type")
    if not entry_type:
        return jsonify({"success": False, "error": "entry_type is required", "error_code": "validation"}), 400

    result = actions.create_entry(entry_type, data.get("fields") or {}, confirm=bool(data.get("confirm")))
    return result_response(result, 201)


@ledger_bp.get("/entries")
def list_entries_route():
    try:
        result = ledger_service.list_entries(
            list_filters(*ENTRY_FILTERS),
            page=request.args.get("page"),
            page_size=request.args.get("page_size"),
        )
        return jsonify(result)
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list ledger entries")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/entries/<entry_id>")
def get_entry_route(entry_id: str):
    try:
        entry = ledger_service.get_entry(entry_id)
        entry["movements"] = inventory_service.list_movements(entry_id)
        return jsonify({"entry": entry})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load ledger entry")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/entries/<entry_id>/confirm")
def confirm_entry_route(entry_id: str):
    return result_response(actions.confirm_entry(entry_id))


@ledger_bp.post("/entries/<entry_id>/reverse")
def reverse_sale_route(entry_id: str):
    """
    Cancel a confirmed SALE with a SALE_RETURN.

    Request body: {"user_id": "...", "reason": "...", "cash_session_id": "..." (optional)}
    """
    data = json_body()
    result = actions.reverse_sale(
        entry_id,
        user_id=data.get("user_id"),
        reason=data.get("reason"),
        cash_session_id=data.get("cash_session_id"),
    )
    return result_response(result, 201)
