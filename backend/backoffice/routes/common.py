# Overview: Shared helpers for the JSON routes; request parsing and result-to-response mapping.

from __future__ import annotations

from flask import jsonify, request

from ..validation import LedgerError

# HTTP status for each failure code
STATUS_BY_CODE = {
    "validation": 400,
    "not_found": 404,
    "conflict": 409,
    "invalid_state": 409,
    "persistence": 503,
    "internal": 500,
}


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def result_response(result, success_status: int = 200):
    """Translate a MutationResult into a JSON response."""
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), STATUS_BY_CODE.get(result.error_code, 400)


def error_response(exc: LedgerError):
    body = {"success": False, "error": str(exc), "error_code": exc.code}
    return jsonify(body), STATUS_BY_CODE.get(exc.code, 400)


def list_filters(*names: str) -> dict:
    return {name: request.args.get(name) for name in names if request.args.get(name) not in (None, "")}
