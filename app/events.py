import logging

from fastapi import FastAPI

from app.core.settings import settings
from app.db.session import engine

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        # Schema changes go through Alembic; startup only announces itself.
        logger.info("Application startup environment=%s", settings.environment)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await engine.dispose()
        logger.info("Application shutdown")
