# Overview: Health endpoint reporting database reachability and the active baseline period.

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Branch, Staff
from ..services import baseline_service
from pms.time_utils import to_utc_z, utcnow

health_bp = Blueprint("health", __name__, url_prefix="/api/health")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        staff_count = db.session.query(Staff).filter(Staff.is_active.is_(True)).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"branches": branch_count, "active_staff": staff_count},
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@health_bp.get("")
def health():
    """
    200 when the database answers, 503 otherwise. A missing active baseline
    period is reported as degraded: deposit growth then falls back to the
    baselines stored on the mappings.
    """
    database = check_database_health()
    status = database["status"]
    active_period = None
    if status == "healthy":
        active_period = baseline_service.active_period()
        if active_period is None:
            status = "degraded"

    body = {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
        "active_baseline_period": active_period,
    }
    return body, 503 if status == "unhealthy" else 200
