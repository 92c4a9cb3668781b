# Overview: Flask API routes for checkout; confirms the browser's order in one transaction.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import set_binding_cookie, with_order_binding
from ..services import checkout_service
from ..services.errors import OrderDeskError
from .responses import error_response, json_body

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/order")


@checkout_bp.post("/checkout")
@with_order_binding
def checkout_route():
    """
    Confirm the order.

    Request body:
    {
        "items": [
            {"type": "PRODUCT", "product_id": "orange-juice", "variant_key": "500ml", "quantity": 2},
            {"type": "PACK", "variant_key": "300ml", "quantity": 1,
             "items": [{"product_id": "green-detox", "quantity": 3}]},
            {"type": "BUNDLE", "bundle_id": "weekly-detox-kit", "quantity": 1}
        ],
        "customer": {"name": "...", "phone": "...", "delivery_method": "delivery", "address": "..."},
        "schedule": {"date": "2026-10-26", "slot_id": "morning"},   (optional)
        "notes": "...",                                              (optional)
        "bottles_to_return": 0,                                      (optional)
        "idempotency_key": "..."                                     (optional)
    }

    201 on a new confirmation, 200 when the request was a no-op re-entry.
    """
    try:
        data = json_body()
        result = checkout_service.checkout(data, g.order_binding)

        response = jsonify({"order": result.to_dict()})
        if result.binding is not None:
            set_binding_cookie(response, result.binding)
        return response, (200 if result.no_op else 201)

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check out order")
        return jsonify({"error": "Internal server error"}), 500
