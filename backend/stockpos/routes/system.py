# backend/stockpos/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Document
from stockpos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a cheap count."""
    start_time = time.time()
    try:
        document_count = db.session.query(Document).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"documents": document_count},
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health_route():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "time": to_utc_z(utcnow()),
        "database": database,
    }), 200 if healthy else 503
