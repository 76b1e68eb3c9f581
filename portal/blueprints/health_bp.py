"""
Health check blueprint.

Endpoints:
    GET /api/v1/health  — app, database and upload storage status
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify

from portal.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    upload_folder = current_app.config.get("UPLOAD_FOLDER", "")
    if upload_folder and os.path.isdir(upload_folder) and os.access(upload_folder, os.W_OK):
        checks["storage"] = {"status": "ok"}
    else:
        checks["storage"] = {"status": "unavailable"}

    body = {"status": "ok" if overall else "degraded", "app": "Project Approval Portal", "checks": checks}
    return jsonify(body), 200 if overall else 503
