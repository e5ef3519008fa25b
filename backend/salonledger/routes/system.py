# backend/salonledger/routes/system.py
"""
System health endpoint.

200 when every check passes, 503 when any check fails. Each check reports
its own latency so a slow database is visible before it starts failing.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Appointment, SessionToken, Tenant
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def _run_check(name: str, check) -> dict:
    started = time.perf_counter()
    try:
        details = check()
        status = {"status": "healthy", "details": details}
    except Exception:
        current_app.logger.exception("Health check %s failed", name)
        db.session.rollback()
        status = {"status": "unhealthy", "error": f"{name} check failed"}
    status["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return status


def _database_check() -> dict:
    return {
        "tenants": db.session.query(Tenant).count(),
        "appointments": db.session.query(Appointment).count(),
    }


def _sessions_check() -> dict:
    live = db.session.query(SessionToken).filter(SessionToken.is_revoked.is_(False))
    return {
        "active_sessions": live.count(),
        "expired_pending_cleanup": live.filter(SessionToken.expires_at < utcnow()).count(),
    }


@system_bp.get("/health")
def health():
    checks = {
        "database": _run_check("database", _database_check),
        "session_service": _run_check("session_service", _sessions_check),
    }
    unhealthy = any(c["status"] == "unhealthy" for c in checks.values())
    body = {
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }
    return body, 503 if unhealthy else 200
