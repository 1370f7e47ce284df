"""
Health check and monitoring endpoints
"""

import structlog
from fastapi import APIRouter, Depends, status

from vaxtlistan.config import get_settings
from vaxtlistan.errors import CatalogLookupError
from vaxtlistan.integrations.supabase import check_catalog_connection
from vaxtlistan.services.availability_search import get_available_catalog_cache
from vaxtlistan.services.import_orchestrator import ImportSessionStore, get_session_store

router = APIRouter()

logger = structlog.get_logger()


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Basic health check - is the API responding?

    Returns:
        dict: Health status
    """
    return {"status": "healthy", "ok": True}


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(store: ImportSessionStore = Depends(get_session_store)):
    """
    Readiness check - can the plant catalog be queried?

    Returns:
        dict: Readiness status with dependency checks, plus in-memory
            import session usage
    """
    checks = {"api": True, "config": True, "catalog": False}

    try:
        checks["catalog"] = await check_catalog_connection()
    except CatalogLookupError as exc:
        logger.warning("readiness_catalog_unavailable", error=str(exc))
        checks["catalog"] = False

    all_ready = all(checks.values())

    return {
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
        "available_catalog_loaded": get_available_catalog_cache().is_loaded(False),
        "import_sessions": store.stats,
        "ok": all_ready,
    }
