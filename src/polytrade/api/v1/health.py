"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.polytrade.config import get_settings
from src.polytrade.core.database import get_engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check.

    No external dependencies are checked -- just that the server is running.
    """
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request, deep: bool) -> dict:
    """Check database connectivity and sheets wiring. Returns check results dict."""
    checks: dict = {"database": "ok", "sheets": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    sync_engine = getattr(request.app.state, "sync_engine", None)
    if sync_engine is None:
        checks["sheets"] = "not_configured"
    elif deep:
        try:
            await sync_engine.check_sheet_connection()
        except Exception as e:
            checks["sheets"] = "error"
            checks["sheets_error"] = str(e)

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request, deep: bool = Query(False)):
    """Readiness check: verifies database connectivity.

    With ``deep=1`` a configured spreadsheet must also answer a read.
    An unconfigured spreadsheet never fails readiness.
    Returns 200 when ready, 503 otherwise.
    """
    checks = await _check_dependencies(request, deep)
    all_healthy = checks.get("database") == "ok" and checks.get("sheets") != "error"

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
