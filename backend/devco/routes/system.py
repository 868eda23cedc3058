# backend/devco/routes/system.py
"""
System health endpoint.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from devco.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "response_time_ms": round((time.time() - start_time) * 1000, 2)}
    except SQLAlchemyError as e:
        current_app.logger.error("Database health check failed: %s", e)
        return {"status": "unhealthy", "error": str(e)}


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "quickbooks_configured": bool(current_app.config.get("QBO_CLIENT_ID")),
            "webhook_verifier_configured": bool(current_app.config.get("QBO_WEBHOOK_VERIFIER_TOKEN")),
        },
    }), 200 if healthy else 503
