import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from formrelay.db.base import get_session_factory

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for the load balancer.

    Returns 503 during graceful shutdown so traffic drains away.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "formrelay"},
        )
    return {"status": "healthy", "service": "formrelay"}


@router.get("/ready")
async def readiness_check():
    """Readiness check - verifies the database is reachable."""
    checks = {"database": False}

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except (RuntimeError, SQLAlchemyError, OSError) as e:
        logger.error("database_health_check_failed", error=str(e), error_type=type(e).__name__)

    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
