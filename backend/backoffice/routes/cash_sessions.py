# Overview: Flask API routes for cash sessions; parses input and returns JSON responses.

# backend/backoffice/routes/cash_sessions.py
"""
Cash Session API Routes

DESIGN:
- Shift lifecycle: open -> close -> reconcile
- One open session per point of sale (409 on a second open)
- Session detail always carries a freshly folded summary
"""

from flask import Blueprint, current_app, jsonify, request

from .. import actions
from ..services import cash_session_service
from ..validation import LedgerError
from .common import error_response, json_body, list_filters, result_response

cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


@cash_sessions_bp.post("")
def open_session_route():
    """
    Open a cash session.

    Request body:
    {
        "point_of_sale_id": "POS-1",
        "user_id": "u-1",
        "opening_amount": "10000.00",
        "notes": "optional"
    }
    """
    data = json_body()
    result = actions.open_cash_session(
        point_of_sale_id=data.get("point_of_sale_id"),
        user_id=data.get("user_id"),
        opening_amount=data.get("opening_amount"),
        notes=data.get("notes"),
    )
    return result_response(result, 201)


@cash_sessions_bp.get("")
def list_sessions_route():
    try:
        result = cash_session_service.list_sessions(
            list_filters("point_of_sale_id", "status", "date_from", "date_to"),
            page=request.args.get("page"),
            page_size=request.args.get("page_size"),
        )
        return jsonify(result)
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list cash sessions")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.get("/active/<point_of_sale_id>")
def active_session_route(point_of_sale_id: str):
    session = cash_session_service.get_active_session(point_of_sale_id)
    if session is None:
        return jsonify({"session": None}), 404
    session["summary"] = cash_session_service.summarize(session["id"]).to_dict()
    return jsonify({"session": session})


@cash_sessions_bp.get("/<session_id>")
def get_session_route(session_id: str):
    try:
        return jsonify({"session": cash_session_service.get_session(session_id)})
    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.post("/<session_id>/close")
def close_session_route(session_id: str):
    """
    Close a session with the counted cash.

    Request body: {"user_id": "...", "closing_amount": "...", "notes": "optional"}
    """
    data = json_body()
    result = actions.close_cash_session(
        session_id,
        user_id=data.get("user_id"),
        closing_amount=data.get("closing_amount"),
        notes=data.get("notes"),
    )
    return result_response(result)


@cash_sessions_bp.post("/<session_id>/reconcile")
def reconcile_session_route(session_id: str):
    """Request body: {"notes": "...", "adjusted_balance": "..." (optional)}"""
    data = json_body()
    result = actions.reconcile_cash_session(
        session_id,
        notes=data.get("notes"),
        adjusted_balance=data.get("adjusted_balance"),
    )
    return result_response(result)
