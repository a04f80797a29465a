# backend/ledgerdesk/routes/system.py
"""
System health endpoint.

Reports database connectivity and ledger consistency for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, Invoice, InventoryMovement
from ..services import ledger_service
from ledgerdesk.time_utils import utcnow, isoformat_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        invoice_count = db.session.query(Invoice).count()
        movement_count = db.session.query(InventoryMovement).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "invoices": invoice_count,
                "inventory_movements": movement_count,
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


def check_ledger_health() -> dict:
    """
    Products whose stock_qty disagrees with their movement log make the ledger degraded.
    """
    try:
        mismatches = ledger_service.reconcile_all()
    except Exception:
        current_app.logger.exception("Ledger health check failed")
        return {"status": "unhealthy", "error": "Ledger error"}

    if mismatches:
        current_app.logger.warning("Stock ledger out of balance for %d product(s)", len(mismatches))
        return {
            "status": "degraded",
            "mismatched_products": [row["product_id"] for row in mismatches],
        }
    return {"status": "healthy"}


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
        ledger_health = check_ledger_health()
    else:
        ledger_health = {"status": "unhealthy", "error": "Database unavailable"}

    all_checks = [database_health, ledger_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": isoformat_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "ledger": ledger_health,
        }
    }

    return response, http_status
