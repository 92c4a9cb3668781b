# backend/orderdesk/routes/system.py
"""
System health endpoint.

Checks database connectivity and whether scheduling is configured.
"""

import time

from flask import Blueprint, current_app
from ..extensions import db
from ..models import DeliverySettings, Order
from orderdesk.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"orders": order_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_schedule_health() -> dict:
    """Degraded (not unhealthy) when no delivery configuration exists yet."""
    try:
        settings = db.session.query(DeliverySettings).first()
        if settings is None:
            return {"status": "degraded", "warning": "Delivery configuration has not been set up"}
        return {"status": "healthy", "details": {"config_version": settings.version_id}}
    except Exception:
        current_app.logger.exception("Schedule health check failed")
        return {"status": "unhealthy", "error": "Schedule config error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    schedule_health = check_schedule_health()

    all_checks = [database_health, schedule_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "schedule": schedule_health,
        },
    }
    return response, http_status
