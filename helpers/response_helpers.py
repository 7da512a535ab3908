"""
JSON response builders shared by the datatables routes.

Errors use the {success: false, error} envelope; datatables payloads are
returned bare because the client-side protocol expects them unwrapped.
"""
from typing import Any, Dict, Tuple

from flask import jsonify, Response


def error_response(message: str, status_code: int = 400, **extra: Any) -> Tuple[Response, int]:
    """
    Build an error envelope.

    Usage:
        return error_response("Table not found", 404)
        return error_response("Access denied", 403, table=table_key)
    """
    body: Dict[str, Any] = {'success': False, 'error': message}
    body.update(extra)
    return jsonify(body), status_code


def datatables_response(payload: Dict[str, Any], status_code: int = 200) -> Tuple[Response, int]:
    """Return a {draw, recordsTotal, recordsFiltered, data} payload unchanged."""
    return jsonify(payload), status_code
