# backend/kasir/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports outbox backlog so operators can
see whether the sync transport is keeping up.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, SyncQueueItem
from ..pos_session import get_registry
from ..services.sync_service import STATUS_PENDING
from kasir.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        pending_sync = db.session.query(SyncQueueItem).filter_by(status=STATUS_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "pending_sync": pending_sync,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    start_time = time.time()
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "open_sessions": len(get_registry()),
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
