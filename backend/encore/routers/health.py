"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from encore.config import get_settings
from encore.database import get_db
from encore.dependencies import get_caches
from encore.services.cache import EngineCaches

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "version": settings.app_version}


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    caches: EngineCaches = Depends(get_caches),
):
    """Readiness check including database and cache connectivity."""
    checks = {
        "database": False,
        "cache": False,
    }

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as exc:
        logger.warning("Database readiness check failed: %s", exc)

    try:
        checks["cache"] = bool(await caches.ping())
    except Exception as exc:
        logger.warning("Cache readiness check failed: %s", exc)

    all_healthy = all(checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "checks": checks,
    }
