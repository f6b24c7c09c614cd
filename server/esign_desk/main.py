from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from esign_desk.api.dependencies.esign import close_esign_provider
from esign_desk.api.routes import callbacks, contracts, cron, health, templates
from esign_desk.core.config import get_settings
from esign_desk.core.logging import configure_logging, get_logger
from esign_desk.db.session import dispose_engine, init_models


configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:  # noqa: ARG001
    settings = get_settings()
    await init_models()
    logger.info("application.startup", environment=settings.environment, esign_configured=settings.esign_configured)
    yield
    await close_esign_provider()
    await dispose_engine()
    logger.info("application.shutdown")


def create_application() -> FastAPI:
    settings = get_settings()
    application = FastAPI(title=settings.app_name, lifespan=lifespan)
    application.include_router(health.router)
    application.include_router(contracts.router)
    application.include_router(callbacks.router)
    application.include_router(cron.router)
    application.include_router(templates.router)
    return application


app = create_application()
