# Overview: Flask API routes for admin order operations; payment, cancellation, status and bulk actions.

"""
Admin Order API Routes

SECURITY: every route requires the admin bearer token (require_admin).
g.actor is recorded on the order and in the ledger.

All mutations are single-order transactions; the bulk routes run one per
order and report partial success.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..services import customer_service, ledger_service, order_service
from ..services.errors import OrderDeskError, ValidationError
from orderdesk.time_utils import parse_iso_date
from .responses import error_response, json_body

admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin")


@admin_orders_bp.get("/orders")
@require_admin
def list_orders_route():
    """
    Query params: status, date (YYYY-MM-DD), mode, phone, limit (default 100), offset
    """
    try:
        schedule_date = request.args.get("date")
        if schedule_date:
            try:
                schedule_date = parse_iso_date(schedule_date)
            except ValueError:
                raise ValidationError("date must be YYYY-MM-DD")

        phone = request.args.get("phone")
        orders, total = order_service.list_orders(
            status=request.args.get("status"),
            schedule_date=schedule_date or None,
            delivery_mode=request.args.get("mode"),
            customer_phone=customer_service.normalize_phone(phone) if phone else None,
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"orders": [o.to_dict() for o in orders], "total": total})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.get("/orders/<order_id>")
@require_admin
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(order_id)
        events = ledger_service.list_ledger_events(order_id=order_id)
        return jsonify({"order": order.to_dict(), "events": [e.to_dict() for e in events]})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/orders/<order_id>/mark-paid")
@require_admin
def mark_paid_route(order_id: str):
    """
    Request body (optional):
    {"method": "pix"}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.mark_paid(order_id, data.get("method"), actor=g.actor)
        return jsonify(result.to_dict())

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark order paid")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/orders/<order_id>/cancel")
@require_admin
def cancel_order_route(order_id: str):
    """
    Request body (optional):
    {"reason": "Customer request"}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.cancel_order(order_id, data.get("reason"), actor=g.actor)
        return jsonify(result.to_dict())

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/orders/<order_id>/status")
@require_admin
def update_status_route(order_id: str):
    """
    Request body:
    {"status": "IN_PRODUCTION"}
    """
    try:
        data = json_body()
        result = order_service.update_status(
            order_id, data.get("status"), actor=g.actor, method=data.get("method")
        )
        return jsonify(result.to_dict())

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/orders/bulk")
@require_admin
def bulk_orders_route():
    """
    Request body:
    {
        "action": "mark_paid" | "cancel" | "status",
        "order_ids": ["...", "..."],
        "status": "OUT_FOR_DELIVERY",   (status action only)
        "method": "pix",                (optional)
        "reason": "..."                 (optional)
    }
    """
    try:
        data = json_body()
        result = order_service.bulk_update_orders(
            data.get("action"),
            data.get("order_ids"),
            status=data.get("status"),
            method=data.get("method"),
            reason=data.get("reason"),
            actor=g.actor,
        )
        return jsonify(result.to_dict())

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to run bulk order action")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/customers/points")
@require_admin
def adjust_points_route():
    """
    Request body:
    {"phones": ["69999990000"], "delta": 5}
    """
    try:
        data = json_body()
        result = customer_service.bulk_adjust_eco_points(
            data.get("phones"), data.get("delta"), actor=g.actor
        )
        return jsonify(result.to_dict())

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust eco points")
        return jsonify({"error": "Internal server error"}), 500


@admin_orders_bp.post("/customers/<phone>/subscription")
@require_admin
def customer_subscription_route(phone):
    """
    Request body:
    {"is_subscriber": true}
    """
    try:
        data = json_body()
        customer = customer_service.set_subscription(phone, data.get("is_subscriber"), actor=g.actor)
        return jsonify({"customer": customer.to_dict()})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer subscription")
        return jsonify({"error": "Internal server error"}), 500
