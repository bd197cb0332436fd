"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — database + notification webhook status
    GET /api/v1/health/ready  — simple 200 for load balancers
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from orchestrator.models import db
from orchestrator.services.container import get_services

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("", methods=["GET"])
def health():
    """Dependency status; 503 when any configured dependency is unhealthy."""
    services = get_services()
    checks = {}

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "healthy",
                              "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "unhealthy", "latency_ms": 0, "error": str(exc)}
        logger.error("Health check: database failed: %s", exc)

    # ── Notification webhook ─────────────────────────────────────────
    checks["notification"] = services.notifier.gateway.ping()

    failed = [name for name, check in checks.items() if check["status"] == "unhealthy"]
    if failed:
        services.ledger.record("system", "health", "health_check_failed", {
            "failed_services": failed,
            "checks": checks,
        })

    return jsonify({
        "status": "degraded" if failed else "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": current_app.config.get("APP_VERSION"),
        "services": checks,
    }), 503 if failed else 200
