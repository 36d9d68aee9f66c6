# backend/guildhall/routes/system.py
"""
System health and version endpoints.

Health reports database connectivity plus the two standing invariants an
operator cares about: the formal seat count and whether the open allocation
period still balances against the budget.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import AllocationRecord, User
from ..services import config_service, member_service
from guildhall.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        record_count = db.session.query(AllocationRecord).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"users": user_count, "allocation_records": record_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_seat_invariants() -> dict:
    """Seat count and open-period balance; a mismatch is reported as degraded."""
    try:
        settings = config_service.allocation_settings()
        seats = member_service.count_formal_seats()
        open_total = db.session.query(
            db.func.coalesce(db.func.sum(AllocationRecord.amount_units), 0)
        ).filter(AllocationRecord.archived.is_(False)).scalar()
        open_count = db.session.query(AllocationRecord).filter(AllocationRecord.archived.is_(False)).count()

        warnings = []
        if seats != settings.seat_count:
            warnings.append(f"formal seats {seats} != formal_seat_count {settings.seat_count}")
        if open_count and int(open_total) != settings.budget_total:
            warnings.append(f"open allocation total {open_total} != budget_total {settings.budget_total}")

        result = {
            "status": "degraded" if warnings else "healthy",
            "details": {
                "formal_seats": seats,
                "required_seats": settings.seat_count,
                "open_records": open_count,
                "open_total": int(open_total),
                "budget_total": settings.budget_total,
            },
        }
        if warnings:
            result["warning"] = "; ".join(warnings)
        return result
    except Exception:
        current_app.logger.exception("Seat invariant check failed")
        return {"status": "unhealthy", "error": "Invariant check error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    if database_health["status"] == "unhealthy":
        invariants = {"status": "unhealthy", "error": "Skipped: database unavailable"}
    else:
        invariants = check_seat_invariants()

    all_checks = [database_health, invariants]
    if any(c["status"] == "unhealthy" for c in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(c["status"] == "degraded" for c in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "invariants": invariants,
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
