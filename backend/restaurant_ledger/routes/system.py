# backend/restaurant_ledger/routes/system.py
"""
System health endpoint.

Checks database connectivity and ledger integrity (global trial balance).
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import JournalLine, Restaurant
from ..models.accounting import SIDE_CREDIT, SIDE_DEBIT
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        restaurant_count = db.session.query(Restaurant).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "restaurants": restaurant_count,
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
    """Total debits must equal total credits across all posted lines."""
    start_time = time.time()
    try:
        debits, credits = db.session.query(
            func.coalesce(func.sum(case((JournalLine.side == SIDE_DEBIT, JournalLine.amount_cents), else_=0)), 0),
            func.coalesce(func.sum(case((JournalLine.side == SIDE_CREDIT, JournalLine.amount_cents), else_=0)), 0),
        ).one()
        elapsed_ms = (time.time() - start_time) * 1000

        if debits != credits:
            current_app.logger.critical("Ledger out of balance: debits=%s credits=%s", debits, credits)
            return {
                "status": "unhealthy",
                "latency_ms": round(elapsed_ms, 2),
                "error": "Ledger out of balance",
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"total_debits_cents": int(debits), "total_credits_cents": int(credits)},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Ledger health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Ledger check error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    ledger_health = check_ledger_health()

    all_checks = [database_health, ledger_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
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
            "ledger": ledger_health,
        }
    }

    return response, http_status
