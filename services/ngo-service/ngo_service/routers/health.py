from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
import time
import structlog
from prometheus_client import CONTENT_TYPE_LATEST

from ..models.ngo_models import HealthCheckResponse
from ..services.notifications import NotificationClient
from ..core.config import settings
from ..models.database import get_db
from ..utils.monitoring import get_prometheus_metrics

logger = structlog.get_logger()
router = APIRouter(prefix="/health", tags=["health"])

# Store service start time for uptime calculation
SERVICE_START_TIME = time.time()


async def check_notification_service() -> str:
    try:
        async with NotificationClient() as client:
            if not await client.test_connection():
                return "unhealthy: connection failed"
    except Exception as e:
        logger.error("Notification service health check failed", error=str(e))
        return f"unhealthy: {str(e)}"
    return "healthy"


@router.get("/", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Comprehensive health check endpoint.

    Checks:
    - Service status
    - Database connectivity
    - Notification service connectivity
    - Service uptime
    """
    database_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        database_status = f"unhealthy: {str(e)}"
        logger.error("Database health check failed", error=str(e))

    notification_status = await check_notification_service()

    overall_status = "healthy"
    if "unhealthy" in database_status or "unhealthy" in notification_status:
        overall_status = "degraded"

    return HealthCheckResponse(
        status=overall_status,
        version=settings.APP_VERSION,
        database_status=database_status,
        notification_status=notification_status,
        uptime_seconds=time.time() - SERVICE_START_TIME
    )


@router.get("/live")
async def liveness_check():
    """
    Kubernetes liveness endpoint.
    Simple check to verify the service is running.
    """
    return {"status": "alive", "timestamp": datetime.now().isoformat()}


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """
    Kubernetes readiness endpoint.
    Checks if the service is ready to handle requests.
    """
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "timestamp": datetime.now().isoformat()}
    except Exception as e:
        logger.error("Readiness check failed", error=str(e))
        raise HTTPException(status_code=503, detail="Service not ready")


@router.get("/version")
async def get_version():
    """Get service version information."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api_version": settings.API_V1_STR,
        "build_time": datetime.now().isoformat()
    }


@router.get("/prometheus")
async def prometheus_metrics():
    """Prometheus text exposition of the service counters."""
    return Response(content=get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
