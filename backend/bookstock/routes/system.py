# backend/bookstock/routes/system.py
"""
System health endpoint.

Checks the database and the location registry so deployments can tell an
empty install (no locations seeded) from a broken one.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import StockLocation, Movement
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        location_count = db.session.query(StockLocation).count()
        movement_count = db.session.query(Movement).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "locations": location_count,
                "movements": movement_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_location_registry_health(database_health: dict) -> dict:
    """
    Degraded when no location exists yet (run `flask locations seed`).
    """
    if database_health["status"] != "healthy":
        return {"status": "unhealthy", "error": "Database unavailable"}

    if database_health["details"]["locations"] == 0:
        return {"status": "degraded", "warning": "No stock locations configured"}

    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Healthy or degraded (still operational)
    - 503: Database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    registry_health = check_location_registry_health(database_health)

    all_checks = [database_health, registry_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "location_registry": registry_health,
        }
    }

    return response, http_status
