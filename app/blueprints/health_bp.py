"""
Health Blueprint — readiness and liveness checks for load balancers and orchestrators.

  GET /api/v1/health/ready   — process is up (no I/O)
  GET /api/v1/health/live    — database round-trip, approval tables present,
                               count of records awaiting approval

Both are outside the JWT gate and the rate limiter.
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.services.subject_adapters import ADAPTERS

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

REQUIRED_TABLES = (
    "users",
    "roles",
    "permissions",
    "role_permissions",
    "workflows",
    "workflow_nodes",
    "workflow_node_users",
    "approval_votes",
    "tickets",
    "reprint_requests",
)


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}

        existing = set(inspect(db.engine).get_table_names())
        missing = [t for t in REQUIRED_TABLES if t not in existing]
        checks["schema"] = {"status": "error" if missing else "ok", "missing_tables": missing}
        if not missing:
            checks["pending_approvals"] = {
                a.subject_type: a.pending_count() for a in ADAPTERS.values()
            }
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database failed: %s", exc)
        checks["database"] = {"status": "error"}
        return jsonify({"status": "error", "checks": checks}), 503

    healthy = checks["schema"]["status"] == "ok"
    return jsonify({"status": "ok" if healthy else "error", "checks": checks}), 200 if healthy else 503
