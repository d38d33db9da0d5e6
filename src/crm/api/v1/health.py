"""Health check endpoints.

/api/health is the lightweight check used by the load balancer and uptime
monitors; /api/health/detailed adds build info, record counts, and the
configuration state of each external integration. Both answer 200 when
healthy, 207 when degraded, and 503 when unhealthy.
"""

from __future__ import annotations

import platform
import time
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.crm.config import get_settings
from src.crm.core.database import get_engine
from src.crm.core.health import (
    HTTP_STATUS_FOR_HEALTH,
    HealthCheckResult,
    calculate_overall_health,
    current_memory_mb,
    get_health_from_response_time,
    get_memory_health,
    sort_health_checks_by_priority,
    worst,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

START_TIME = time.monotonic()

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}


def _uptime_ms() -> int:
    return int((time.monotonic() - START_TIME) * 1000)


async def check_database() -> HealthCheckResult:
    """Timed ``SELECT 1`` against the configured database."""
    start = time.monotonic()
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("health.database_failed", error=str(e))
        return HealthCheckResult(
            status="unhealthy",
            response_time=round((time.monotonic() - start) * 1000, 2),
            error=str(e),
        )
    elapsed = round((time.monotonic() - start) * 1000, 2)
    return HealthCheckResult(status="healthy", response_time=elapsed)


def check_memory() -> HealthCheckResult:
    limit_mb = get_settings().MEMORY_LIMIT_MB
    used_mb = current_memory_mb()
    return HealthCheckResult(
        status=get_memory_health(used_mb, limit_mb),
        details={"used_mb": used_mb, "limit_mb": limit_mb},
    )


def check_environment() -> HealthCheckResult:
    settings = get_settings()
    missing = settings.missing_required()
    details = {"environment": settings.ENVIRONMENT.value, "region": settings.REGION}
    if missing:
        details["missing_env_vars"] = missing
        return HealthCheckResult(
            status="unhealthy",
            error=f"Missing required environment variables: {', '.join(missing)}",
            details=details,
        )
    return HealthCheckResult(status="healthy", details=details)


def _response(status: str, body: dict) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_STATUS_FOR_HEALTH[status],
        content=body,
        headers=NO_CACHE_HEADERS,
    )


@router.get("")
async def health_check():
    """Basic health: database round trip, memory, and required configuration.

    A database slower than one second leaves the check healthy but marks
    the service as a whole degraded.
    """
    settings = get_settings()
    checks = {
        "database": await check_database(),
        "memory": check_memory(),
        "environment": check_environment(),
    }

    overall = calculate_overall_health(checks)
    if checks["database"].status == "healthy" and checks["database"].response_time > 1000:
        overall = worst(overall, "degraded")

    return _response(
        overall,
        {
            "status": overall,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": _uptime_ms(),
            "version": settings.APP_VERSION,
            "checks": {name: check.to_dict() for name, check in checks.items()},
        },
    )


@router.get("/detailed")
async def detailed_health_check(request: Request):
    """Health plus build info, record counts, and integration status."""
    settings = get_settings()

    database = await check_database()
    if database.status == "healthy":
        database.status = get_health_from_response_time(database.response_time, 1000, 2000)
        try:
            database.details["queries"] = await _record_counts(request)
        except Exception as e:
            logger.error("health.record_counts_failed", error=str(e))
            database.status = "unhealthy"
            database.error = str(e)

    integrations = {
        "stripe": "configured" if settings.stripe_configured else "not_configured",
        "resend": "configured" if settings.resend_configured else "not_configured",
        "netparcel": "configured" if settings.netparcel_configured else "not_configured",
    }
    external = HealthCheckResult(
        status="healthy" if all(v == "configured" for v in integrations.values()) else "degraded",
        details={"services": integrations},
    )

    checks = {
        "database": database,
        "memory": check_memory(),
        "environment": check_environment(),
        "external": external,
    }
    overall = calculate_overall_health({k: v for k, v in checks.items() if k != "external"})

    return _response(
        overall,
        {
            "status": overall,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": _uptime_ms(),
            "version": settings.APP_VERSION,
            "build": {
                "version": settings.APP_VERSION,
                "python_version": platform.python_version(),
                "environment": settings.ENVIRONMENT.value,
            },
            "missing_env_vars": settings.missing_required(),
            "checks": {name: check.to_dict() for name, check in sort_health_checks_by_priority(checks)},
        },
    )


async def _record_counts(request: Request) -> dict[str, int]:
    state = request.app.state
    counts: dict[str, int] = {}
    for name, attr, method in (
        ("customers", "customer_repository", "count_customers"),
        ("deals", "deal_repository", "count_deals"),
        ("invoices", "invoice_repository", "count_invoices"),
    ):
        repo = getattr(state, attr, None)
        counts[name] = await getattr(repo, method)() if repo is not None else 0
    return counts
