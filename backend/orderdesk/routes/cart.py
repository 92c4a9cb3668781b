# Overview: Flask API routes for the cart session; issues or reuses the order-binding cookie.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import set_binding_cookie, with_order_binding
from ..services import order_binding_service

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.post("/init")
@with_order_binding
def init_cart_route():
    """Reuse a valid draft binding or mint a new one. Sets the cookie when minted."""
    try:
        binding, is_new = order_binding_service.init_cart_binding(g.order_binding)
        response = jsonify({
            "order_id": binding.order_id,
            "short_id": binding.short_id,
            "is_new": is_new,
        })
        if is_new:
            set_binding_cookie(response, binding)
        return response

    except Exception:
        current_app.logger.exception("Failed to initialize cart session")
        return jsonify({"error": "Internal server error"}), 500
