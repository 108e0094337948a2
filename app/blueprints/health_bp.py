"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database round-trip plus import table check
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.services.msproject_snapshot import (
    ASSIGNMENTS_TABLE,
    METADATA_LIST_TABLE,
    PREDECESSORS_TABLE,
    RESOURCE_DETAILS_TABLE,
    TASK_DETAILS_TABLE,
)
from app.services.usage_guard import USAGE_TABLE

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

IMPORT_TABLES = (
    METADATA_LIST_TABLE,
    USAGE_TABLE,
    TASK_DETAILS_TABLE,
    PREDECESSORS_TABLE,
    RESOURCE_DETAILS_TABLE,
    ASSIGNMENTS_TABLE,
)


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check: database reachable and every import table queryable."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Import tables ────────────────────────────────────────────────
    tables = {}
    if overall:
        for name in IMPORT_TABLES:
            table = db.metadata.tables[name]
            try:
                count = db.session.execute(db.select(db.func.count()).select_from(table)).scalar()
                tables[name] = {"status": "ok", "rows": count}
            except SQLAlchemyError as exc:
                db.session.rollback()
                tables[name] = {"status": "error", "detail": str(exc)}
                overall = False
                logger.error("Health check — table %s failed: %s", name, exc)
    checks["tables"] = tables

    checks["app"] = {
        "name": "Lessons Learned Platform",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
