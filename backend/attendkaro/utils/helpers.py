"""Helper functions for the application."""
from typing import Any, Dict

from flask import jsonify, request


def handle_error(error, status_code: int):
    """Handle HTTP errors with consistent format."""
    message = getattr(error, 'description', None) or str(error)
    return jsonify({
        'error': True,
        'message': message,
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def error_response(message: str, status_code: int = 400, **extra):
    """Return consistent error response."""
    body = {
        'error': True,
        'message': message,
        'status_code': status_code
    }
    body.update(extra)
    return jsonify(body), status_code


def get_json_body() -> Dict[str, Any]:
    """Request JSON as a dict; anything else becomes an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def client_identity() -> str:
    """Identity used to track failed session-code lookups.

    Behind a proxy, ProxyFix (see PROXY_FIX_X_FOR) rewrites remote_addr.
    """
    return request.remote_addr or 'unknown'
