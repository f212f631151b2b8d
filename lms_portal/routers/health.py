"""Health check endpoints."""
from fastapi import APIRouter, Depends
import logging

from ..core.config import settings
from ..core.dependencies import get_lms_client, get_session_manager
from ..services.lms_client import LMSClient
from ..services.session_service import SessionManager

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

@router.get("/")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }

@router.get("/backend")
async def backend_health(client: LMSClient = Depends(get_lms_client)):
    """LMS backend reachability"""
    reachable = await client.ping()
    if not reachable:
        logger.error(f"Health check failed: LMS backend at {client.base_url} unreachable")
    return {
        "status": "healthy" if reachable else "unhealthy",
        "backend": client.base_url
    }

@router.get("/full-health")
async def full_health_check(
    client: LMSClient = Depends(get_lms_client),
    manager: SessionManager = Depends(get_session_manager)
):
    """Comprehensive health check"""
    purged = manager.purge_expired()
    health_status = {
        "service": "healthy",
        "backend": "healthy" if await client.ping() else "unhealthy"
    }

    overall_status = "healthy" if all(
        status == "healthy" for status in health_status.values()
    ) else "degraded"

    return {
        "status": overall_status,
        "components": health_status,
        "active_sessions": len(manager),
        "expired_sessions_purged": purged
    }
