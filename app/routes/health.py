# app/routes/health.py
"""
Health check endpoints with database pool and leak monitor status.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check
from app.features.call_outcomes.jobs.leak_monitor_job import conversion_leak_monitor

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "call-priority-backend"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check with the database pool and background monitor.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool health check
    t0 = time.time()
    try:
        db_health = await db_health_check()

        is_healthy = db_health.get("healthy", False)
        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }

        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                    "pool_utilization_percent": pool_stats.get("pool_utilization_percent", 0),
                    "connection_time_ms": db_health.get("connection_time_ms", 0),
                }
            )

        if "warnings" in db_health:
            checks["database"]["warnings"] = db_health["warnings"]

        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            if "error_type" in db_health:
                checks["database"]["error_type"] = db_health["error_type"]

        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Leak monitor (informational, only required when enabled in-process)
    job_status = conversion_leak_monitor.get_job_status()
    monitor_ok = job_status["is_scheduled"] or not settings.LEAK_MONITOR_ENABLED
    checks["conversion_leak_monitor"] = {
        "ok": monitor_ok,
        "enabled": settings.LEAK_MONITOR_ENABLED,
        "last_run_time": job_status["last_run_time"],
    }
    overall_ok = overall_ok and monitor_ok

    # 3) Configuration checks
    config_issues = []
    if not settings.DATABASE_URL:
        config_issues.append("DATABASE_URL not set")

    checks["configuration"] = {
        "ok": not config_issues,
        "issues": config_issues or None,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and not config_issues

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()
