# backend/stockrecon/routes/system.py
"""
System health endpoint.

Checks the database and reports the reconciliation backlog so operators can
see whether the daily sweep is keeping up.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import InventoryBatch, SaleTrackingEntry, TRACKING_PENDING, TRACKING_ERROR
from stockrecon.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        batch_count = db.session.query(InventoryBatch).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "inventory_batches": batch_count,
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


def check_reconciliation_health() -> dict:
    """
    Pending and errored tracking entries. A backlog larger than one sweep's
    limit means the sweep cannot drain it in a single run.
    """
    start_time = time.time()
    try:
        pending = db.session.query(SaleTrackingEntry).filter_by(status=TRACKING_PENDING).count()
        errored = db.session.query(SaleTrackingEntry).filter_by(status=TRACKING_ERROR).count()
        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "mode": current_app.config["RECONCILIATION_MODE"],
            "pending_entries": pending,
            "error_entries": errored,
            "scheduler_enabled": bool(current_app.config.get("SCHEDULER_ENABLED")),
        }
        if pending > current_app.config["RECONCILE_DEFAULT_LIMIT"]:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Pending backlog exceeds one sweep",
                "details": details,
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Reconciliation health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Reconciliation backlog unavailable"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    reconciliation_health = check_reconciliation_health()

    all_checks = [database_health, reconciliation_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "reconciliation": reconciliation_health,
        }
    }

    return response, http_status
