# Overview: Request decorators for API routes; admin guard and order-binding cookie handling.

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .services import order_binding_service


def require_admin(f):
    """
    Require the admin bearer token.

    SECURITY: Returns 401 if:
    - No Authorization header
    - ADMIN_API_TOKEN is not configured (admin API disabled)
    - Token does not match (constant-time compare)

    Sets g.actor to the X-Actor header (or "admin") for audit fields.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        expected = current_app.config.get("ADMIN_API_TOKEN")
        token = auth_header.split(" ", 1)[1].strip()
        if not expected or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            return jsonify({"error": "Invalid admin token"}), 401

        g.actor = (request.headers.get("X-Actor") or "admin")[:64]
        return f(*args, **kwargs)

    return decorated_function


def with_order_binding(f):
    """
    Parse the order-binding cookie into g.order_binding (None when absent or
    malformed). Routes decide whether a missing binding is an error.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        cookie_name = current_app.config.get("ORDER_COOKIE_NAME", "order_session")
        g.order_binding = order_binding_service.parse_binding_cookie(request.cookies.get(cookie_name))
        return f(*args, **kwargs)

    return decorated_function


def set_binding_cookie(response, binding):
    """Attach the binding cookie to a response."""
    response.set_cookie(
        current_app.config.get("ORDER_COOKIE_NAME", "order_session"),
        order_binding_service.format_binding_cookie(binding),
        max_age=current_app.config.get("ORDER_COOKIE_MAX_AGE"),
        httponly=True,
        secure=current_app.config.get("ORDER_COOKIE_SECURE", False),
        samesite="Lax",
    )
    return response
