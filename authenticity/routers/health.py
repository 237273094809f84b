import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from authenticity.config import get_settings
from authenticity.schemas.health import HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        service=settings.service_name,
        version=settings.model_version,
        db_type=settings.db_type,
        drift_monitoring_enabled=settings.drift_monitoring_enabled,
        classifier_backend=settings.classifier_backend,
        ocr_backend=settings.ocr_backend,
    )


@router.get("/internal/metrics")
async def internal_metrics():
    """Connection pool snapshot for the monitoring service."""
    from authenticity.database import sync_engine

    pool = sync_engine.pool
    checked_in = getattr(pool, "checkedin", lambda: 0)()
    checked_out = getattr(pool, "checkedout", lambda: 0)()
    return {
        "service": get_settings().service_name,
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S"),
        "dbPool": {
            "available": checked_in,
            "total": checked_in + checked_out,
        },
    }
