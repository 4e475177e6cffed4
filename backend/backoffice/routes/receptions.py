# Overview: Flask API routes for purchase orders, receptions and their cancellation.

# backend/backoffice/routes/receptions.py
"""
Reception API Routes

DESIGN:
- Purchase orders are created confirmed and received one or more times
- Direct receptions skip the order
- Cancelling a reception writes a PURCHASE_RETURN; the original is kept
"""

from flask import Blueprint, current_app, jsonify, request

from .. import actions
from ..services import reception_service
from ..validation import LedgerError
from .common import error_response, json_body, list_filters, result_response

receptions_bp = Blueprint("receptions", __name__, url_prefix="/api/receptions")


@receptions_bp.get("")
def list_receptions_route():
    try:
        result = reception_service.list_receptions(
            list_filters("entry_type", "status", "supplier_id", "storage_id", "date_from", "date_to", "search"),
            page=request.args.get("page"),
            page_size=request.args.get("page_size"),
        )
        return jsonify(result)
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list receptions")
        return jsonify({"error": "Internal server error"}), 500


@receptions_bp.post("/purchase-orders")
def create_purchase_order_route():
    """
    Request body:
    {
        "supplier_id": "...", "storage_id": "...", "user_id": "...",
        "lines": [{"product_id": "...", "quantity": 10, "unit_price": "8000"}],
        "payment_term_days": 30
    }
    """
    data = json_body()
    result = actions.create_purchase_order(
        supplier_id=data.get("supplier_id"),
        storage_id=data.get("storage_id"),
        user_id=data.get("user_id"),
        lines=data.get("lines"),
        branch_id=data.get("branch_id"),
        external_reference=data.get("external_reference"),
        notes=data.get("notes"),
        payment_term_days=data.get("payment_term_days"),
        expected_date=data.get("expected_date"),
    )
    return result_response(result, 201)


@receptions_bp.post("/from-order")
def receive_purchase_order_route():
    """
    Request body:
    {
        "purchase_order_id": "...", "user_id": "...",
        "lines": [{"product_id": "...", "received_quantity": 10, "unit_price": "8000"}],
        "payment_due_date": "2024-02-01" (optional)
    }
    """
    data = json_body()
    result = actions.receive_purchase_order(
        data.get("purchase_order_id"),
        user_id=data.get("user_id"),
        lines=data.get("lines"),
        storage_id=data.get("storage_id"),
        external_reference=data.get("external_reference"),
        notes=data.get("notes"),
        payment_due_date=data.get("payment_due_date"),
        payment_term_days=data.get("payment_term_days"),
    )
    return result_response(result, 201)


@receptions_bp.post("/direct")
def create_direct_reception_route():
    data = json_body()
    result = actions.create_direct_reception(
        supplier_id=data.get("supplier_id"),
        storage_id=data.get("storage_id"),
        user_id=data.get("user_id"),
        lines=data.get("lines"),
        branch_id=data.get("branch_id"),
        external_reference=data.get("external_reference"),
        notes=data.get("notes"),
        payment_due_date=data.get("payment_due_date"),
        payment_term_days=data.get("payment_term_days"),
    )
    return result_response(result, 201)


@receptions_bp.post("/<entry_id>/cancel")
def cancel_reception_route(entry_id: str):
    """Request body: {"user_id": "...", "reason": "..."}"""
    data = json_body()
    result = actions.cancel_reception(entry_id, user_id=data.get("user_id"), reason=data.get("reason"))
    return result_response(result)
