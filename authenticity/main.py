import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authenticity.config import get_settings
from authenticity.routers import behavior, feedback, health, support, verification

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings = get_settings()
    logger.info(
        "Starting %s (port=%d, db=%s, drift monitor=%s)",
        settings.service_name,
        settings.server_port,
        settings.db_type,
        "enabled" if settings.drift_monitoring_enabled else "disabled",
    )

    if settings.db_type == "sqlite":
        from authenticity.database import get_record_store

        get_record_store().create_all()

    if settings.drift_monitoring_enabled:
        try:
            from authenticity.tasks.scheduler import start_scheduler

            start_scheduler()
        except Exception as e:
            logger.warning("Failed to start scheduler: %s", e)

    yield

    logger.info("Shutting down %s", settings.service_name)
    from authenticity.tasks.scheduler import stop_scheduler

    stop_scheduler()


app = FastAPI(
    title="Product Authenticity AI",
    description="Counterfeit verdict scoring, scan anomaly detection and model drift monitoring",
    version=get_settings().model_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api/ai", tags=["health"])
app.include_router(verification.router, prefix="/api/ai", tags=["verification"])
app.include_router(behavior.router, prefix="/api/ai", tags=["behavior"])
app.include_router(feedback.router, prefix="/api/ai", tags=["feedback"])
app.include_router(support.router, prefix="/api/ai", tags=["support"])
