# Overview: Flask API route for the health check; returns JSON responses.

# backend/storefront/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports ledger table counts for
deployment debugging.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import func, select

from ..extensions import db
from ..models import Order, Product, SessionToken, Transaction
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        counts = {
            "products": db.session.execute(select(func.count(Product.id))).scalar_one(),
            "orders": db.session.execute(select(func.count(Order.id))).scalar_one(),
            "transactions": db.session.execute(select(func.count(Transaction.id))).scalar_one(),
            "active_sessions": db.session.execute(
                select(func.count(SessionToken.id)).where(SessionToken.is_revoked.is_(False))
            ).scalar_one(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status
