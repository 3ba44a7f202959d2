# backend/dealer/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports storage budget usage so a
deployment probe can tell a dead database from a full media store.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..services import quota_service
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity with a trivial round-trip.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_storage_health() -> dict:
    """Storage is degraded at 90% of the budget or more."""
    try:
        info = quota_service.storage_info()
    except Exception:
        current_app.logger.exception("Storage health check failed")
        return {"status": "unhealthy", "error": "Storage accounting error"}

    status = "degraded" if info["percentage_used"] >= 90 else "healthy"
    return {"status": status, "details": info}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    if database_health["status"] == "healthy":
        storage_health = check_storage_health()
    else:
        storage_health = {"status": "unhealthy", "error": "Database unavailable"}

    all_checks = [database_health, storage_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "storage": storage_health,
        },
    }
    return response, http_status
