import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from app.core.config import settings as core_settings
from app.db.session import init_db
from .api import router as reminders_router
from .config import settings

logging.basicConfig(
    level=core_settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting up {core_settings.PROJECT_NAME} reminder service...")
    init_db()
    yield
    logger.info("Shutting down reminder service...")
    from .runtime import get_engine
    if get_engine.cache_info().currsize:
        get_engine().request_stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title=f"{core_settings.PROJECT_NAME} - Reminder Service",
        version=core_settings.VERSION,
        lifespan=lifespan,
    )
    app.include_router(reminders_router, prefix=f"{core_settings.API_V1_STR}/reminders", tags=["reminders"])
    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()
