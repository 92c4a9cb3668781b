# Overview: Shared JSON response helpers for API routes.

from flask import jsonify, request

from ..services.errors import OrderDeskError, ValidationError


def error_response(e: OrderDeskError):
    """Expected service failure -> JSON body with the error's HTTP status."""
    return jsonify(e.to_dict()), e.status_code


def json_body() -> dict:
    """Request JSON object, or ValidationError when the body is missing or not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
