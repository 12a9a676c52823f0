# backend/elhamd/routes/system.py
"""
System health endpoint.

Reports database reachability and configuration sanity for deployment
debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Invoice, InventoryItem, Transaction
from elhamd.config import DEV_SECRET_KEY
from elhamd.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        invoice_count = db.session.query(Invoice).count()
        transaction_count = db.session.query(Transaction).count()
        inventory_count = db.session.query(InventoryItem).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "invoices": invoice_count,
                "ledger_transactions": transaction_count,
                "inventory_items": inventory_count,
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


def check_configuration_health() -> dict:
    """Flag settings that are fine for development but not for production."""
    warnings = []
    if current_app.config.get("SECRET_KEY") == DEV_SECRET_KEY and not current_app.config.get("TESTING"):
        warnings.append("SECRET_KEY is the development default")

    if warnings:
        return {"status": "degraded", "warning": "; ".join(warnings)}
    return {
        "status": "healthy",
        "details": {
            "default_currency": current_app.config.get("DEFAULT_CURRENCY"),
            "invoice_link_reference_fallback": current_app.config.get("INVOICE_LINK_REFERENCE_FALLBACK"),
        },
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    config_health = check_configuration_health()

    all_checks = [database_health, config_health]
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
            "configuration": config_health,
        }
    }

    return response, http_status
