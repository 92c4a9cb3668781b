# Overview: Flask API routes for admin inventory; manual stock adjustments and the movement ledger.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..services import inventory_service
from ..services.errors import OrderDeskError
from .responses import error_response, json_body

admin_inventory_bp = Blueprint("admin_inventory", __name__, url_prefix="/api/admin/inventory")


@admin_inventory_bp.post("/adjust")
@require_admin
def adjust_stock_route():
    """
    Request body:
    {
        "product_id": "orange-juice",
        "variant_key": "500ml",
        "type": "IN" | "OUT" | "ADJUST",
        "quantity": 10,
        "reason": "Weekly production"
    }
    """
    try:
        data = json_body()
        result = inventory_service.adjust_stock(
            data.get("product_id"),
            data.get("variant_key"),
            data.get("type"),
            data.get("quantity"),
            data.get("reason"),
            actor=g.actor,
        )
        return jsonify(result.to_dict()), 201

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@admin_inventory_bp.get("/movements")
@require_admin
def list_movements_route():
    """Query params: product_id, order_id, limit (default 200)"""
    try:
        movements = inventory_service.list_movements(
            product_id=request.args.get("product_id"),
            order_id=request.args.get("order_id"),
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory movements")
        return jsonify({"error": "Internal server error"}), 500
