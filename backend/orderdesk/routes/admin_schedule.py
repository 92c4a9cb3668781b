# Overview: Flask API routes for admin schedule management; delivery config and per-date overrides.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin
from ..services import delivery_config_service, schedule_admin_service
from ..services.errors import OrderDeskError
from .responses import error_response, json_body

admin_schedule_bp = Blueprint("admin_schedule", __name__, url_prefix="/api/admin/schedule")


@admin_schedule_bp.get("/config")
@require_admin
def get_config_route():
    try:
        config = delivery_config_service.load_delivery_config()
        return jsonify({"config": config.to_dict()})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load delivery config")
        return jsonify({"error": "Internal server error"}), 500


@admin_schedule_bp.put("/config")
@require_admin
def save_config_route():
    """Replace the whole configuration document. Every weekday must be present for every mode."""
    try:
        data = json_body()
        config = delivery_config_service.save_delivery_config(data, actor=g.actor)
        return jsonify({"config": config.to_dict()})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save delivery config")
        return jsonify({"error": "Internal server error"}), 500


@admin_schedule_bp.get("")
@admin_schedule_bp.get("/")
@require_admin
def schedule_overview_route():
    """
    Query params: mode (default DELIVERY), start (YYYY-MM-DD), days (default 7)
    """
    try:
        overview = schedule_admin_service.get_schedule_overview(
            request.args.get("start"),
            request.args.get("days") or 7,
            request.args.get("mode", "DELIVERY"),
        )
        return jsonify({"days": overview})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load schedule overview")
        return jsonify({"error": "Internal server error"}), 500


@admin_schedule_bp.patch("/days/<day>/<mode>")
@require_admin
def patch_day_route(day: str, mode: str):
    """
    Typed per-date override.

    Request body (any subset):
    {
        "override_closed": true | false | null,
        "override_daily_capacity": 12 | null,
        "daily_booked": 3,
        "slots": {"morning": {"capacity": 4, "enabled": false, "label": "...", "booked": 1}}
    }
    """
    try:
        data = json_body()
        view = schedule_admin_service.apply_day_override(day, mode, data, actor=g.actor)
        return jsonify({"day": view.to_dict()})

    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply day override")
        return jsonify({"error": "Internal server error"}), 500
