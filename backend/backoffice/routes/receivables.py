# Overview: Flask API routes for accounts receivable and credit quotas.

from flask import Blueprint, current_app, jsonify, request

from .. import actions
from ..services import quota_service, receivables_service
from ..validation import LedgerError
from .common import error_response, json_body, list_filters, result_response

receivables_bp = Blueprint("receivables", __name__, url_prefix="/api/receivables")


@receivables_bp.get("")
def list_receivables_route():
    """
    Paged quota rows of credit-bearing entries.

    Query params: date_from, date_to, customer_id, search, include_paid,
    page, page_size (default 25, max 200).
    """
    try:
        result = receivables_service.list_accounts_receivable(
            list_filters("date_from", "date_to", "customer_id", "search", "include_paid"),
            page=request.args.get("page"),
            page_size=request.args.get("page_size"),
        )
        return jsonify(result)
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list accounts receivable")
        return jsonify({"error": "Internal server error"}), 500


@receivables_bp.get("/customers/<customer_id>/quotas")
def customer_quotas_route(customer_id: str):
    try:
        if request.args.get("pending_only") in ("1", "true"):
            return jsonify(quota_service.pending_quotas(customer_id))
        include_paid = request.args.get("include_paid") in ("1", "true")
        quotas = quota_service.list_customer_quotas(customer_id, include_paid=include_paid)
        return jsonify({"customer_id": customer_id, "quotas": quotas})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list customer quotas")
        return jsonify({"error": "Internal server error"}), 500


@receivables_bp.post("/quotas/pay")
def pay_quota_route():
    """
    Pay one quota.

    Request body:
    {
        "quota_id": "...",
        "source_entry_id": "...",
        "cash_session_id": "...",
        "user_id": "...",
        "payments": [{"payment_method": "CASH", "amount": "30000"}]
    }
    """
    data = json_body()
    result = actions.pay_quota(
        quota_id=data.get("quota_id"),
        source_entry_id=data.get("source_entry_id"),
        cash_session_id=data.get("cash_session_id"),
        user_id=data.get("user_id"),
        payments=data.get("payments"),
        notes=data.get("notes"),
    )
    return result_response(result, 201)
