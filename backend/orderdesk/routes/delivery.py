# Overview: Flask API routes for delivery scheduling; availability reads and slot holds.

"""
Delivery Scheduling API Routes

DESIGN:
- GET slots gives back lapsed draft holds, then reads the resolved
  availability view.
- reserve/release act on the draft order bound to the browser cookie.
  A reserve without a cookie mints a binding and sets it on the response.
- Full/closed slots answer 409 with the customer-facing "choose another
  time" message, never a generic error.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import set_binding_cookie, with_order_binding
from ..services import availability_service, delivery_config_service, order_binding_service, reservation_service
from ..services.errors import OrderDeskError, UnauthorizedError, ValidationError
from orderdesk.time_utils import parse_iso_date
from .responses import error_response, json_body

delivery_bp = Blueprint("delivery", __name__, url_prefix="/api/delivery")


@delivery_bp.get("/slots")
def list_slots_route():
    """
    Availability view.

    Query params:
        mode: DELIVERY | PICKUP (default DELIVERY)
        start: YYYY-MM-DD (default today in the configured timezone)
        days: 1..62 (default AVAILABILITY_DEFAULT_DAYS)
    """
    try:
        start = request.args.get("start")
        if start:
            try:
                start = parse_iso_date(start)
            except ValueError:
                raise ValidationError("start must be YYYY-MM-DD")

        days = request.args.get("days") or current_app.config.get("AVAILABILITY_DEFAULT_DAYS", 14)
        config = delivery_config_service.load_delivery_config()
        reservation_service.release_expired_holds()
        result = availability_service.get_availability(
            start,
            days,
            request.args.get("mode", "DELIVERY"),
            config=config,
        )
        return jsonify({
            "mode": request.args.get("mode", "DELIVERY").upper(),
            "config_version": config.version,
            "notes_for_customer": config.notes_for_customer,
            "days": [d.to_dict() for d in result],
        })

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load delivery slots")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.post("/reserve")
@with_order_binding
def reserve_route():
    """
    Hold a slot for this browser's draft order.

    Request body:
    {
        "date": "2026-10-26",
        "mode": "DELIVERY",
        "slot_id": "morning"
    }
    """
    try:
        data = json_body()
        binding = g.order_binding
        minted = binding is None
        if minted:
            binding = order_binding_service.mint_binding()

        result = reservation_service.reserve_slot(
            binding,
            data.get("date"),
            data.get("mode", "DELIVERY"),
            data.get("slot_id"),
        )
        response = jsonify({"reservation": result.to_dict()})
        if minted:
            set_binding_cookie(response, binding)
        return response

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reserve delivery slot")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.post("/release")
@with_order_binding
def release_route():
    try:
        if g.order_binding is None:
            raise UnauthorizedError("No order session")
        result = reservation_service.release_slot(g.order_binding)
        return jsonify({"reservation": result.to_dict()})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to release delivery slot")
        return jsonify({"error": "Internal server error"}), 500
